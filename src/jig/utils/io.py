"""Small IO helpers for safe persistence.

Provides atomic_write_text() which writes to a temp file in the same
filesystem and atomically replaces the destination, so a reader never
observes a half-written state document.

Also provides read_text_locked() which reads under a shared advisory lock.
"""
from __future__ import annotations

import logging
import os
import sys
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TextIO

logger = logging.getLogger(__name__)


@contextmanager
def shared_file_lock(file_handle: TextIO) -> Iterator[None]:
    """Shared (read) advisory file lock context manager.

    On Unix, uses fcntl.flock with LOCK_SH. On Windows, or when locking
    fails, continues without locking.
    """
    locked = False

    if sys.platform != "win32":
        try:
            import fcntl

            fcntl.flock(file_handle, fcntl.LOCK_SH)
            locked = True
        except OSError:
            logger.debug(f"Could not lock {file_handle.name}, reading unlocked")

    try:
        yield
    finally:
        if locked:
            import fcntl

            try:
                fcntl.flock(file_handle, fcntl.LOCK_UN)
            except OSError:
                pass


def read_text_locked(path: str | Path) -> str:
    """Read a UTF-8 text file while holding a shared lock."""
    with open(path, encoding="utf-8") as f:
        with shared_file_lock(f):
            return f.read()


def atomic_write_text(path: str | Path, data: str, perms: int = 0o644) -> None:
    """Atomically write text content to path.

    Steps:
    - Ensure parent directory exists
    - Write to a NamedTemporaryFile in the same directory
    - fsync the temp file
    - os.replace() to move into place atomically
    - chmod the target path to perms

    If os.replace() fails, the temp file is cleaned up before re-raising.
    """
    dest = Path(path)
    dest.parent.mkdir(parents=True, exist_ok=True)

    tmp_name: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            dir=str(dest.parent),
            prefix=f".{dest.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())

        os.replace(tmp_name, dest)
        tmp_name = None

        try:
            os.chmod(dest, perms)
        except PermissionError:
            logger.warning(f"Could not set permissions {oct(perms)} on {dest}")
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
