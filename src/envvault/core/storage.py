"""
Persistence for vault files

Writes never touch the target path directly:
> data goes to a sibling temp file in the same directory (same filesystem)
> the temp file is flushed and fsynced
> the temp file is renamed over the target (atomic on POSIX and Windows)
> the directory entry is fsynced where the platform allows it

commit() covers the first three steps and sync_directory() the last, so a
caller knows whether the rename happened before a directory fsync fails.
A failure before the rename leaves the previous file untouched. Nothing is
retried; filesystem errors propagate as OSError.

Only one process should hold a given vault open for writing at a time. This
module does not lock; concurrent writers end up last-writer-wins.
"""

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def sync_directory(path) -> None:
    """Fsync the directory holding ``path``. No-op where directories cannot be opened (Windows)."""
    if os.name != "posix":
        return
    directory = Path(path).parent
    flags = os.O_RDONLY | getattr(os, "O_DIRECTORY", 0)
    fd = os.open(directory, flags)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def commit(path, data: bytes) -> None:
    """
    Replace ``path`` with ``data`` via a fsynced temp file and a rename.

    Once this returns the new contents are visible at ``path``; call
    sync_directory() afterwards to make the rename itself durable.
    """
    path = Path(path)
    directory = path.parent
    directory.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        raise
    logger.debug("committed %d bytes to %s", len(data), path)


def read(path) -> bytes:
    """Raw bytes of a vault file."""
    with open(path, "rb") as f:
        return f.read()


def remove(path) -> None:
    Path(path).unlink()
    sync_directory(path)
    logger.debug("removed %s", path)
