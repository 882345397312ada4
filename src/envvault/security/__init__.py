"""Security helpers: KDF, secret encryption and key handling for EnvVault.

This package provides:
- Argon2id master key derivation, optionally mixed with a keyfile
- HKDF per-secret and integrity sub-keys with versioned labels
- AES-256-GCM sealing of individual secret values
- a zeroizing in-memory key session
- an optional OS keyring adapter for caching vault passwords
"""

from .kdf import (
    generate_salt,
    derive_master_key,
    derive_auth_key,
    derive_secret_key,
    derive_integrity_key,
    hash_keyfile,
    verify_keyfile,
)
from .crypto import (
    encrypt_secret,
    decrypt_secret,
    compute_integrity_tag,
    verify,
)
from .keyfile import generate_keyfile, load_keyfile
from .session import KeySession
from .keystore import KeyringCredentialStore, assess_keyring_backend

__all__ = [
    "generate_salt",
    "derive_master_key",
    "derive_auth_key",
    "derive_secret_key",
    "derive_integrity_key",
    "hash_keyfile",
    "verify_keyfile",
    "encrypt_secret",
    "decrypt_secret",
    "compute_integrity_tag",
    "verify",
    "generate_keyfile",
    "load_keyfile",
    "KeySession",
    "KeyringCredentialStore",
    "assess_keyring_backend",
]
