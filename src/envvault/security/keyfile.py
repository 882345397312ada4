"""Keyfile helpers: a 32-byte random file used as a second factor."""

import os
from pathlib import Path

from envvault.core.exceptions import KeyfileError

KEYFILE_LEN = 32


def generate_keyfile(path: Path | str) -> bytes:
    """
    Write a new random keyfile to ``path`` and return its bytes.

    Refuses to overwrite an existing file; the file is created owner-only.
    """
    path = Path(path).expanduser()
    if path.exists():
        raise KeyfileError(f"keyfile already exists at {path}")

    keyfile = os.urandom(KEYFILE_LEN)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(keyfile)
    except OSError as e:
        raise KeyfileError(f"failed to write keyfile: {e}") from e
    return keyfile


def load_keyfile(path: Path | str) -> bytes:
    """Read a keyfile and check its length."""
    path = Path(path).expanduser()
    if not path.exists():
        raise KeyfileError(f"keyfile not found at {path}")
    try:
        data = path.read_bytes()
    except OSError as e:
        raise KeyfileError(f"failed to read keyfile: {e}") from e
    if len(data) != KEYFILE_LEN:
        raise KeyfileError(f"keyfile must be exactly {KEYFILE_LEN} bytes, got {len(data)}")
    return data
