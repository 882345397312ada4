"""In-memory key session for one unlocked vault.

Holds the master key, the integrity key and a cache of per-secret keys, all
in mutable buffers. lock() overwrites every buffer with zeros before dropping
it; callers are expected to reach lock() on every exit path.
"""
from __future__ import annotations

from typing import Dict, List, Optional

from envvault.core.exceptions import VaultStateError
from envvault.core.models import Auth, KdfParams

from .kdf import derive_auth_key, derive_integrity_key, derive_secret_key, wipe


class KeySession:
    def __init__(self):
        self._master_key: Optional[bytearray] = None
        self._salt: Optional[bytes] = None
        self._integrity_key: Optional[bytearray] = None
        self._secret_keys: Dict[str, bytearray] = {}

    @classmethod
    def derive(cls, auth: Auth, salt: bytes, params: KdfParams) -> "KeySession":
        """Run Argon2id for ``auth`` and return an unlocked session."""
        session = cls()
        session.unlock_with_key(derive_auth_key(auth, salt, params), salt)
        return session

    def unlock_with_key(self, master_key: bytearray, salt: bytes) -> None:
        """Take ownership of an already-derived master key."""
        self.lock()
        if not isinstance(master_key, bytearray):
            master_key = bytearray(master_key)
        self._master_key = master_key
        self._salt = bytes(salt)

    @property
    def unlocked(self) -> bool:
        return self._master_key is not None

    @property
    def salt(self) -> bytes:
        self._require_unlocked()
        return self._salt

    def _require_unlocked(self) -> bytearray:
        if self._master_key is None:
            raise VaultStateError("Key session is locked")
        return self._master_key

    def integrity_key(self) -> bytearray:
        master_key = self._require_unlocked()
        if self._integrity_key is None:
            self._integrity_key = derive_integrity_key(master_key, self._salt)
        return self._integrity_key

    def secret_key(self, name: str) -> bytearray:
        """Per-secret key, derived on first use and cached for the session."""
        master_key = self._require_unlocked()
        key = self._secret_keys.get(name)
        if key is None:
            key = derive_secret_key(master_key, self._salt, name)
            self._secret_keys[name] = key
        return key

    def cached_names(self) -> List[str]:
        return list(self._secret_keys)

    def forget(self, name: str) -> None:
        """Wipe and drop the cached key for one secret, if any."""
        wipe(self._secret_keys.pop(name, None))

    def lock(self) -> None:
        """Zero all key material and forget it. Safe to call repeatedly."""
        try:
            wipe(self._master_key)
            wipe(self._integrity_key)
            for key in self._secret_keys.values():
                wipe(key)
        finally:
            self._master_key = None
            self._integrity_key = None
            self._secret_keys = {}
            self._salt = None
