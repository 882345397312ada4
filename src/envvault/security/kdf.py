import hashlib
import hmac
import os
from typing import Optional

from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from envvault.core.exceptions import KeyDerivationError, KeyfileMismatchError
from envvault.core.models import Auth, KdfParams, PasswordKeyfile

SALT_LEN = 32
KEY_LEN = 32

# Every HKDF use gets its own full, versioned label so that secret keys and
# the integrity key never share a derivation domain.
SECRET_KEY_LABEL = b"envvault-secret-v1:"
INTEGRITY_KEY_LABEL = b"envvault-integrity-v1:"


def generate_salt(length: int = SALT_LEN) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def derive_master_key(
    password: bytes,
    salt: bytes,
    time_cost: int = 3,
    memory_cost: int = 65536,
    parallelism: int = 4,
    key_len: int = KEY_LEN,
) -> bytearray:
    """
    Derive a master key from a password using Argon2id.
    Returns the raw key in a mutable buffer so it can be wiped later.
    """
    if isinstance(password, str):
        password = password.encode("utf-8")

    KdfParams(memory_cost, time_cost, parallelism).validate()
    try:
        raw = hash_secret_raw(
            secret=bytes(password),
            salt=salt,
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=key_len,
            type=Type.ID,
        )
    except HashingError as e:
        raise KeyDerivationError(f"Argon2id hashing failed: {e}") from e
    return bytearray(raw)


def effective_password(auth: Auth) -> bytearray:
    """
    Material fed to Argon2id for ``auth``.

    With a keyfile this is ``HMAC-SHA256(key=keyfile, msg=password)``, so the
    second factor is mixed in before the memory-hard step.
    """
    if isinstance(auth, PasswordKeyfile):
        return bytearray(hmac.new(auth.keyfile, auth.password, hashlib.sha256).digest())
    return bytearray(auth.password)


def derive_auth_key(auth: Auth, salt: bytes, params: KdfParams) -> bytearray:
    """Derive the master key for ``auth`` under a vault's salt and parameters."""
    material = effective_password(auth)
    try:
        return derive_master_key(
            material,
            salt,
            time_cost=params.iterations,
            memory_cost=params.memory_kib,
            parallelism=params.parallelism,
        )
    finally:
        wipe(material)


def _hkdf(master_key: bytes, info: bytes) -> bytearray:
    hkdf = HKDF(algorithm=hashes.SHA256(), length=KEY_LEN, salt=None, info=info)
    return bytearray(hkdf.derive(bytes(master_key)))


def derive_secret_key(master_key: bytes, salt: bytes, name: str) -> bytearray:
    """Per-secret key bound to one (vault salt, secret name) pair."""
    info = SECRET_KEY_LABEL + bytes(salt) + b":" + name.encode("utf-8")
    return _hkdf(master_key, info)


def derive_integrity_key(master_key: bytes, salt: bytes) -> bytearray:
    """Key for the whole-file HMAC trailer."""
    return _hkdf(master_key, INTEGRITY_KEY_LABEL + bytes(salt))


# ----------------------------------------------------------------------
# Keyfile second factor
# ----------------------------------------------------------------------


def hash_keyfile(keyfile: bytes) -> bytes:
    """SHA-256 of the keyfile, stored in the header instead of the keyfile."""
    return hashlib.sha256(keyfile).digest()


def verify_keyfile(auth: Auth, expected_hash: Optional[bytes]) -> None:
    """
    Cheap keyfile pre-check run before Argon2id.

    Raises ``KeyfileMismatchError`` when the vault needs a keyfile and none or
    the wrong one was given, or when a keyfile is given for a vault without one.
    """
    has_keyfile = isinstance(auth, PasswordKeyfile)
    if expected_hash is None:
        if has_keyfile:
            raise KeyfileMismatchError("this vault does not use a keyfile")
        return
    if not has_keyfile:
        raise KeyfileMismatchError("this vault requires a keyfile")
    if not hmac.compare_digest(hash_keyfile(auth.keyfile), expected_hash):
        raise KeyfileMismatchError("wrong keyfile: hash does not match the vault")


def wipe(buf: Optional[bytearray]) -> None:
    """Overwrite a mutable key buffer with zeros in place."""
    if buf is None:
        return
    for i in range(len(buf)):
        buf[i] = 0
