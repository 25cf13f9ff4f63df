from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from gatekeeper.utils.locking import FileLock, LockAcquisitionError

if TYPE_CHECKING:
    from pathlib import Path


def test_hold_creates_lock_file_and_releases(tmp_path: Path) -> None:
    lock = FileLock(tmp_path / "state" / "integration.lock")

    with lock.hold(timeout=1.0):
        assert lock.is_locked
        assert lock.lock_path.exists()
    assert not lock.is_locked


def test_second_holder_times_out(tmp_path: Path) -> None:
    first = FileLock(tmp_path / "integration.lock")
    second = FileLock(tmp_path / "integration.lock")

    with first.hold():
        with pytest.raises(LockAcquisitionError, match="timed out"):
            second.acquire(timeout=0.1)
        assert not second.is_locked

    with second.hold(timeout=1.0):
        assert second.is_locked


def test_release_without_acquire_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(RuntimeError, match="lock not held"):
        FileLock(tmp_path / "x.lock").release()
