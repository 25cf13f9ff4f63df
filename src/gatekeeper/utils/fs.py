"""Crash-safe file writes for the integration ledger."""

from __future__ import annotations

import json
import os
import tempfile
from contextlib import suppress
from pathlib import Path

PathLike = str | os.PathLike[str]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``data`` in one rename.

    The bytes go to a sibling temp file that is fsynced before ``os.replace``, so
    readers see either the old document or the new one, never a torn write.
    """

    target = Path(path)
    directory = target.parent.resolve(strict=True)
    if not directory.is_dir():
        raise NotADirectoryError(f"{directory} is not a directory")

    payload = data.encode(encoding) if isinstance(data, str) else data
    handle, scratch = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(handle, "wb") as stream:
            stream.write(payload)
            stream.flush()
            os.fsync(stream.fileno())
        os.replace(scratch, target)
    except BaseException:
        with suppress(OSError):
            os.unlink(scratch)
        raise
    _sync_directory(directory)


def atomic_write_json(path: PathLike, payload: object) -> None:
    """Write ``payload`` as sorted, indented JSON, creating missing parent directories."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    atomic_write(target, json.dumps(payload, sort_keys=True, indent=2, ensure_ascii=False) + "\n")


def _sync_directory(directory: Path) -> None:
    # directory fsync is unsupported on Windows and on some filesystems
    if os.name == "nt":
        return
    try:
        descriptor = os.open(directory, os.O_RDONLY | getattr(os, "O_DIRECTORY", 0))
    except OSError:
        return
    try:
        with suppress(OSError):
            os.fsync(descriptor)
    finally:
        os.close(descriptor)


__all__ = ["atomic_write", "atomic_write_json"]
