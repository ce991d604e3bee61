"""
Tests for atomic file operations and lock files
"""

import os
import threading
import time

import pytest

from utils.atomic_io import (
    AtomicFileError,
    FileLockError,
    atomic_read_bytes,
    atomic_update_bytes,
    atomic_write_bytes,
    cleanup_stale_locks,
    file_lock,
)


def test_write_then_read(tmp_path):
    target = tmp_path / "nested" / "state.json"

    atomic_write_bytes(target, b"payload")

    assert atomic_read_bytes(target) == b"payload"
    assert not (tmp_path / "nested" / "state.json.lock").exists()
    assert [p.name for p in target.parent.iterdir()] == ["state.json"]


def test_read_missing_returns_default(tmp_path):
    assert atomic_read_bytes(tmp_path / "missing.json") is None
    assert atomic_read_bytes(tmp_path / "missing.json", default=b"{}") == b"{}"


def test_update_sees_current_content(tmp_path):
    target = tmp_path / "counter.txt"
    atomic_write_bytes(target, b"1")

    result = atomic_update_bytes(target, lambda data: str(int(data) + 1).encode())

    assert result == b"2"
    assert target.read_bytes() == b"2"


def test_update_returning_none_keeps_content(tmp_path):
    target = tmp_path / "counter.txt"
    atomic_write_bytes(target, b"7")
    before = target.stat().st_mtime_ns

    assert atomic_update_bytes(target, lambda data: None) == b"7"
    assert target.stat().st_mtime_ns == before


def test_update_missing_file_receives_none(tmp_path):
    received = []

    def update(data):
        received.append(data)
        return b"new"

    atomic_update_bytes(tmp_path / "fresh.txt", update)

    assert received == [None]
    assert (tmp_path / "fresh.txt").read_bytes() == b"new"


def test_update_function_errors_propagate(tmp_path):
    target = tmp_path / "counter.txt"
    atomic_write_bytes(target, b"1")

    with pytest.raises(ZeroDivisionError):
        atomic_update_bytes(target, lambda data: str(1 / 0).encode())

    assert target.read_bytes() == b"1"
    assert not (tmp_path / "counter.txt.lock").exists()


def test_concurrent_updates_are_serialized(tmp_path):
    target = tmp_path / "counter.txt"
    atomic_write_bytes(target, b"0")

    def worker():
        for _ in range(10):
            atomic_update_bytes(target, lambda data: str(int(data) + 1).encode())

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert target.read_bytes() == b"40"


def test_lock_is_not_reentrant_in_same_thread(tmp_path):
    target = tmp_path / "state.json"

    with file_lock(target, operation="outer"):
        with pytest.raises(FileLockError):
            with file_lock(target, operation="inner"):
                pass


def test_lock_timeout(tmp_path):
    target = tmp_path / "state.json"
    (tmp_path / "state.json.lock").write_text("{}", encoding="utf-8")

    with pytest.raises(FileLockError):
        with file_lock(target, timeout=0.2):
            pass


def test_stale_lock_is_broken(tmp_path):
    target = tmp_path / "state.json"
    lock = tmp_path / "state.json.lock"
    lock.write_text("{}", encoding="utf-8")
    old = time.time() - 3600
    os.utime(lock, (old, old))

    atomic_write_bytes(target, b"ok", timeout=1.0)

    assert target.read_bytes() == b"ok"


def test_read_error_raises(tmp_path):
    directory_in_the_way = tmp_path / "state.json"
    directory_in_the_way.mkdir()

    with pytest.raises(AtomicFileError):
        atomic_read_bytes(directory_in_the_way, retry_count=2, retry_delay=0)


def test_cleanup_stale_locks(tmp_path):
    fresh = tmp_path / "fresh.json.lock"
    stale = tmp_path / "stale.json.lock"
    fresh.write_text("{}", encoding="utf-8")
    stale.write_text("{}", encoding="utf-8")
    old = time.time() - 3600
    os.utime(stale, (old, old))

    assert cleanup_stale_locks(tmp_path, max_age_seconds=60) == 1
    assert fresh.exists()
    assert not stale.exists()
    assert cleanup_stale_locks(tmp_path / "missing") == 0
