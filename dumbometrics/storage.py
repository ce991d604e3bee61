"""
Persistence adapters - load/save capability for registry snapshots.

The registry never touches storage directly: it asks a SnapshotStore to load
the serialized snapshot kept under a fixed key, and to durably store the new
one before a mutation is reported as successful.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from utils.atomic_io import (
    AtomicFileError,
    atomic_read_bytes,
    atomic_update_bytes,
    atomic_write_bytes,
    cleanup_stale_locks,
)

from .errors import MalformedSnapshot, PersistenceFailure
from .model import Snapshot

if TYPE_CHECKING:
    from config.settings import ApplicationSettings

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "metrics"

UpdateFunc = Callable[[Snapshot | None], Snapshot]


@runtime_checkable
class SnapshotStore(Protocol):
    """
    Contract between the registry and a key-value persistence backend.

    Implementations must round-trip a Snapshot losslessly and report every
    storage problem as PersistenceFailure.
    """

    def load(self) -> Snapshot | None:
        """
        Load the stored snapshot.

        Returns:
            The snapshot, or None when nothing has been stored yet

        Raises:
            PersistenceFailure: If the blob cannot be read or decoded
        """
        ...

    def save(self, snapshot: Snapshot) -> None:
        """
        Durably replace the stored snapshot as a whole.

        Raises:
            PersistenceFailure: If the snapshot could not be stored
        """
        ...

    def update(self, func: UpdateFunc) -> Snapshot:
        """
        Apply func to the stored snapshot and store its result.

        func receives the current snapshot (None when absent) and returns the
        new one; returning the same object means nothing changed and no write
        happens. Exceptions raised by func propagate and nothing is stored.

        Returns:
            The snapshot stored after the call
        """
        ...


class AbstractSnapshotStore(ABC):
    """
    Base class for stores that only provide whole-blob load and save.

    The default update serializes read-modify-write cycles inside this process.
    Writers in other processes still race at whole-snapshot granularity and
    the last writer wins.
    """

    def __init__(self):
        self._update_lock = threading.RLock()

    @abstractmethod
    def load(self) -> Snapshot | None:
        pass

    @abstractmethod
    def save(self, snapshot: Snapshot) -> None:
        pass

    def update(self, func: UpdateFunc) -> Snapshot:
        with self._update_lock:
            current = self.load()
            updated = func(current)
            if updated is not current:
                self.save(updated)
            return updated


def decode_snapshot(blob: bytes | None, source: str) -> Snapshot | None:
    if blob is None:
        return None
    try:
        return Snapshot.from_bytes(blob)
    except MalformedSnapshot as e:
        logger.error(
            "Stored snapshot could not be decoded",
            extra={"source": source, "size_bytes": len(blob)},
        )
        raise PersistenceFailure(f"Corrupt snapshot in {source}") from e


class MemorySnapshotStore(AbstractSnapshotStore):
    """
    Process-local store keeping the serialized blob in a dict.

    Several registries sharing one instance behave like independent request
    handlers sharing an external cache.
    """

    def __init__(self, key: str = SNAPSHOT_KEY):
        super().__init__()
        self.key = key
        self._blobs: dict[str, bytes] = {}

    def load(self) -> Snapshot | None:
        with self._update_lock:
            blob = self._blobs.get(self.key)
        return decode_snapshot(blob, f"memory:{self.key}")

    def save(self, snapshot: Snapshot) -> None:
        blob = snapshot.to_bytes()
        with self._update_lock:
            self._blobs[self.key] = blob

    def has_snapshot(self) -> bool:
        with self._update_lock:
            return self.key in self._blobs


class FileSnapshotStore(AbstractSnapshotStore):
    """
    Filesystem store: one JSON blob per key, written atomically.

    update holds a lock file for the whole read-modify-write cycle, so
    concurrent processes sharing the directory never lose an increment.
    """

    def __init__(
        self,
        directory: str | Path,
        key: str = SNAPSHOT_KEY,
        lock_timeout: float = 10.0,
    ):
        super().__init__()
        self.directory = Path(directory)
        self.key = key
        self.lock_timeout = lock_timeout
        removed = cleanup_stale_locks(self.directory)
        if removed:
            logger.warning(
                "Removed abandoned snapshot locks",
                extra={"directory": str(self.directory), "count": removed},
            )

    @property
    def path(self) -> Path:
        return self.directory / f"{self.key}.json"

    def has_snapshot(self) -> bool:
        return self.path.exists()

    def load(self) -> Snapshot | None:
        try:
            blob = atomic_read_bytes(self.path, timeout=self.lock_timeout)
        except AtomicFileError as e:
            logger.error(
                "Failed to load snapshot",
                extra={"file": str(self.path), "error": str(e)},
            )
            raise PersistenceFailure(f"Cannot read {self.path}: {e}") from e
        return decode_snapshot(blob, str(self.path))

    def save(self, snapshot: Snapshot) -> None:
        try:
            atomic_write_bytes(self.path, snapshot.to_bytes(), timeout=self.lock_timeout)
        except AtomicFileError as e:
            logger.error(
                "Failed to save snapshot",
                extra={"file": str(self.path), "error": str(e)},
            )
            raise PersistenceFailure(f"Cannot write {self.path}: {e}") from e

    def update(self, func: UpdateFunc) -> Snapshot:
        result: Snapshot | None = None

        def apply(blob: bytes | None) -> bytes | None:
            nonlocal result
            current = decode_snapshot(blob, str(self.path))
            result = func(current)
            if result is current:
                return None
            return result.to_bytes()

        with self._update_lock:
            try:
                atomic_update_bytes(self.path, apply, timeout=self.lock_timeout)
            except AtomicFileError as e:
                logger.error(
                    "Failed to update snapshot",
                    extra={"file": str(self.path), "error": str(e)},
                )
                raise PersistenceFailure(f"Cannot update {self.path}: {e}") from e
        return result


def create_store(settings: "ApplicationSettings") -> SnapshotStore:
    """
    Create the snapshot store selected by configuration.

    Args:
        settings: Application configuration containing cache settings

    Returns:
        SnapshotStore: Configured persistence adapter

    Raises:
        ValueError: If the backend is not supported
    """
    from config.settings import CacheBackend

    cache = settings.cache
    backend = CacheBackend(cache.backend)

    if backend == CacheBackend.FILESYSTEM:
        logger.info(
            "Using filesystem snapshot store",
            extra={"directory": str(cache.directory), "key": cache.key},
        )
        return FileSnapshotStore(
            cache.directory, key=cache.key, lock_timeout=cache.lock_timeout
        )

    if backend == CacheBackend.MEMORY:
        logger.info("Using in-memory snapshot store", extra={"key": cache.key})
        return MemorySnapshotStore(key=cache.key)

    raise ValueError(
        f"Unsupported cache backend: {backend}. Supported: filesystem, memory"
    )
