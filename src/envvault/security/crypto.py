"""AES-256-GCM secret encryption and the HMAC-SHA256 integrity trailer.

Each secret value is sealed on its own:

- 12-byte nonce from the OS CSPRNG, fresh on every call
- ciphertext followed by the 16-byte GCM tag

The trailer is HMAC-SHA256 over the exact encoded header bytes followed by
the exact encoded secrets bytes. All comparisons of authentication material
go through :func:`verify`, which does not exit early on the first mismatch.
"""
import hashlib
import hmac
import os
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from envvault.core.exceptions import AuthenticationError

NONCE_LEN = 12
GCM_TAG_LEN = 16
INTEGRITY_TAG_LEN = 32


def encrypt_secret(key: bytes, plaintext: bytes) -> Tuple[bytes, bytes]:
    """Encrypt ``plaintext`` and return ``(nonce, ciphertext_and_tag)``."""
    aead = AESGCM(bytes(key))
    nonce = os.urandom(NONCE_LEN)
    return nonce, aead.encrypt(nonce, bytes(plaintext), None)


def decrypt_secret(key: bytes, nonce: bytes, ciphertext: bytes) -> bytes:
    """Decrypt a value sealed by :func:`encrypt_secret`; nothing is returned on failure."""
    if len(nonce) != NONCE_LEN or len(ciphertext) < GCM_TAG_LEN:
        raise AuthenticationError("secret decryption failed")
    aead = AESGCM(bytes(key))
    try:
        return aead.decrypt(nonce, ciphertext, None)
    except InvalidTag:
        raise AuthenticationError("secret decryption failed") from None


def compute_integrity_tag(key: bytes, header_bytes: bytes, secrets_bytes: bytes) -> bytes:
    mac = hmac.new(bytes(key), digestmod=hashlib.sha256)
    mac.update(header_bytes)
    mac.update(secrets_bytes)
    return mac.digest()


def verify(expected: bytes, actual: bytes) -> bool:
    """Constant-time equality for tags, hashes and plaintexts."""
    return hmac.compare_digest(bytes(expected), bytes(actual))


def verify_integrity_tag(key: bytes, header_bytes: bytes, secrets_bytes: bytes, tag: bytes) -> None:
    expected = compute_integrity_tag(key, header_bytes, secrets_bytes)
    if not verify(expected, tag):
        raise AuthenticationError("vault authentication failed")
