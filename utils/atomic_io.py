"""
Atomic I/O Operations
Race-free blob persistence with lock files and atomic replace.
A writer never exposes a partially written file: data goes to a temporary
file in the same directory, is fsync'ed and then moved over the target.
"""

import json
import logging
import os
import tempfile
import threading
import time
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

# Lock files older than this are considered abandoned by a dead process
STALE_LOCK_SECONDS = 300.0


@dataclass
class LockInfo:
    """Information about file lock"""

    path: str
    process_id: int
    thread_id: int
    timestamp: float
    operation: str


class AtomicFileError(Exception):
    """Base exception for atomic file operations"""

    pass


class FileLockError(AtomicFileError):
    """Exception raised when file locking fails"""

    pass


class AtomicWriteError(AtomicFileError):
    """Exception raised when atomic write fails"""

    pass


# Locks held by the current thread, keyed by lock file path
_local_locks = threading.local()


def _get_lock_registry() -> dict[str, LockInfo]:
    if not hasattr(_local_locks, "registry"):
        _local_locks.registry = {}
    return _local_locks.registry


class FileLocker:
    """Cross-process file locking using an exclusively created lock file"""

    def __init__(
        self,
        file_path: str | Path,
        timeout: float = 10.0,
        operation: str = "unknown",
        stale_after: float = STALE_LOCK_SECONDS,
    ):
        self.file_path = str(file_path)
        self.timeout = timeout
        self.operation = operation
        self.stale_after = stale_after
        self.lock_file: str | None = None

    @property
    def lock_path(self) -> str:
        return f"{self.file_path}.lock"

    def __enter__(self):
        """Acquire the lock, retrying with progressive backoff until timeout"""
        lock_path = self.lock_path
        registry = _get_lock_registry()

        if lock_path in registry:
            existing = registry[lock_path]
            logger.warning(
                "File already locked by this thread",
                extra={
                    "file": self.file_path,
                    "existing_operation": existing.operation,
                    "current_operation": self.operation,
                },
            )
            raise FileLockError(f"File {self.file_path} already locked in thread")

        start_time = time.time()

        while time.time() - start_time < self.timeout:
            try:
                with open(lock_path, "x", encoding="utf-8") as lock_file:
                    lock_info = LockInfo(
                        path=self.file_path,
                        process_id=os.getpid(),
                        thread_id=threading.get_ident(),
                        timestamp=time.time(),
                        operation=self.operation,
                    )
                    json.dump(
                        {
                            "path": lock_info.path,
                            "pid": lock_info.process_id,
                            "thread_id": lock_info.thread_id,
                            "timestamp": lock_info.timestamp,
                            "operation": lock_info.operation,
                            "iso_time": datetime.fromtimestamp(
                                lock_info.timestamp, tz=UTC
                            ).isoformat(),
                        },
                        lock_file,
                    )
                    lock_file.flush()
                    os.fsync(lock_file.fileno())

                registry[lock_path] = lock_info
                self.lock_file = lock_path
                logger.debug(
                    "File lock acquired",
                    extra={"file": self.file_path, "operation": self.operation},
                )
                return self

            except FileExistsError:
                if self._remove_if_stale(lock_path):
                    continue
                time.sleep(0.05 + (time.time() - start_time) * 0.01)

            except OSError as e:
                raise FileLockError(
                    f"Could not create lock file for {self.file_path}: {e}"
                ) from e

        raise FileLockError(
            f"Could not acquire lock for {self.file_path} within {self.timeout}s"
        )

    def _remove_if_stale(self, lock_path: str) -> bool:
        try:
            lock_age = time.time() - os.path.getmtime(lock_path)
        except OSError:
            # Released between our attempt and the check
            return True

        if lock_age <= self.stale_after:
            return False

        logger.warning(
            "Removing stale lock",
            extra={"file": self.file_path, "lock_age_seconds": lock_age},
        )
        try:
            os.remove(lock_path)
        except FileNotFoundError:
            pass
        return True

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Release file lock"""
        registry = _get_lock_registry()

        if self.lock_file:
            try:
                os.remove(self.lock_file)
            except OSError as e:
                logger.warning(
                    "Failed to release file lock",
                    extra={"file": self.file_path, "error": str(e)},
                )
            registry.pop(self.lock_file, None)
            self.lock_file = None
            logger.debug(
                "File lock released",
                extra={"file": self.file_path, "operation": self.operation},
            )


@contextmanager
def file_lock(file_path: str | Path, timeout: float = 10.0, operation: str = "unknown"):
    """Context manager for file locking"""
    locker = FileLocker(file_path, timeout, operation)
    with locker:
        yield


def _read_unlocked(file_path: Path) -> bytes | None:
    if not file_path.exists():
        return None
    return file_path.read_bytes()


def _write_unlocked(file_path: Path, data: bytes) -> None:
    temp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=file_path.parent,
            prefix=f".tmp_{file_path.stem}_",
            suffix=file_path.suffix,
            delete=False,
        ) as temp_file:
            temp_path = Path(temp_file.name)
            temp_file.write(data)
            temp_file.flush()
            os.fsync(temp_file.fileno())

        # Atomic on POSIX and Windows when source and target share a directory
        os.replace(temp_path, file_path)

    except OSError as e:
        if temp_path is not None and temp_path.exists():
            temp_path.unlink()
        logger.error(
            "Atomic write failed",
            extra={"file": str(file_path), "error": str(e)},
            exc_info=True,
        )
        raise AtomicWriteError(f"Failed to write {file_path}: {e}") from e

    logger.debug(
        "Atomic write completed",
        extra={"file": str(file_path), "size_bytes": len(data)},
    )


def atomic_write_bytes(
    file_path: str | Path,
    data: bytes,
    timeout: float = 10.0,
    create_dirs: bool = True,
) -> None:
    """
    Atomically replace file content while holding its lock

    Args:
        file_path: Target file path
        data: Complete new content
        timeout: Seconds to wait for the file lock
        create_dirs: Create parent directories if needed

    Raises:
        AtomicWriteError: If write operation fails
        FileLockError: If file locking fails
    """
    file_path = Path(file_path)

    if create_dirs:
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise AtomicWriteError(f"Cannot create {file_path.parent}: {e}") from e

    with file_lock(file_path, timeout=timeout, operation="atomic_write"):
        _write_unlocked(file_path, data)


def atomic_read_bytes(
    file_path: str | Path,
    default: bytes | None = None,
    timeout: float = 10.0,
    retry_count: int = 3,
    retry_delay: float = 0.1,
) -> bytes | None:
    """
    Read file content while holding its lock

    Args:
        file_path: Source file path
        default: Returned when the file does not exist
        timeout: Seconds to wait for the file lock
        retry_count: Number of attempts on OSError
        retry_delay: Delay between attempts in seconds

    Raises:
        AtomicFileError: If the file exists but cannot be read
    """
    file_path = Path(file_path)

    if not file_path.exists():
        return default

    last_error: OSError | None = None
    for attempt in range(retry_count):
        try:
            with file_lock(file_path, timeout=timeout, operation="atomic_read"):
                data = _read_unlocked(file_path)
            return default if data is None else data

        except OSError as e:
            last_error = e
            logger.warning(
                "Read attempt failed",
                extra={"file": str(file_path), "attempt": attempt + 1, "error": str(e)},
            )
            if attempt < retry_count - 1:
                time.sleep(retry_delay)

    raise AtomicFileError(
        f"Failed to read {file_path} after {retry_count} attempts: {last_error}"
    )


def atomic_update_bytes(
    file_path: str | Path,
    update_func: Callable[[bytes | None], bytes | None],
    timeout: float = 10.0,
) -> bytes | None:
    """
    Read-modify-write a file under a single lock

    update_func receives the current content (None when the file is missing)
    and returns the new content, or None to leave the file untouched.
    Exceptions raised by update_func propagate unchanged and nothing is written.

    Returns:
        The content stored after the call

    Raises:
        AtomicFileError: If locking, reading or writing fails
    """
    file_path = Path(file_path)

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise AtomicWriteError(f"Cannot create {file_path.parent}: {e}") from e

    with file_lock(file_path, timeout=timeout, operation="atomic_update"):
        try:
            current = _read_unlocked(file_path)
        except OSError as e:
            raise AtomicFileError(f"Failed to read {file_path}: {e}") from e

        updated = update_func(current)
        if updated is None:
            return current

        _write_unlocked(file_path, updated)
        return updated


def cleanup_stale_locks(
    directory: str | Path, max_age_seconds: float = STALE_LOCK_SECONDS
) -> int:
    """
    Remove lock files older than max_age_seconds from directory

    Returns:
        Number of stale locks cleaned up
    """
    directory = Path(directory)
    cleanup_count = 0

    if not directory.exists():
        return 0

    for lock_file in directory.glob("*.lock"):
        try:
            file_age = time.time() - lock_file.stat().st_mtime
            if file_age > max_age_seconds:
                lock_file.unlink()
                cleanup_count += 1
                logger.info(
                    "Removed stale lock file",
                    extra={"lock_file": str(lock_file), "age_seconds": file_age},
                )
        except OSError as e:
            logger.warning(
                "Failed to clean up lock file",
                extra={"lock_file": str(lock_file), "error": str(e)},
            )

    return cleanup_count
