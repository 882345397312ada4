"""
Base data models for vaults, secrets and the audit trail
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from .exceptions import InvalidNameError, KeyDerivationError


# Argon2id bounds. The floor guards against dangerously weak settings, the
# ceilings keep a corrupted header from requesting absurd work.
MIN_MEMORY_KIB = 8192
MAX_MEMORY_KIB = 4 * 1024 * 1024
MAX_ITERATIONS = 1024
MAX_PARALLELISM = 255


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class VaultState(Enum):
    # lifecycle of a vault session
    LOCKED = "locked"
    UNLOCKING = "unlocking"
    UNLOCKED = "unlocked"
    CLOSED = "closed"


@dataclass(frozen=True)
class KdfParams:
    """Argon2id cost parameters, stored in every vault header."""

    memory_kib: int = 65536
    iterations: int = 3
    parallelism: int = 4

    def validate(self) -> "KdfParams":
        for name in ("memory_kib", "iterations", "parallelism"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise KeyDerivationError(f"Argon2 {name} must be an integer")
        if not 1 <= self.parallelism <= MAX_PARALLELISM:
            raise KeyDerivationError(
                f"Argon2 parallelism must be between 1 and {MAX_PARALLELISM} (got {self.parallelism})"
            )
        if not 1 <= self.iterations <= MAX_ITERATIONS:
            raise KeyDerivationError(
                f"Argon2 iterations must be between 1 and {MAX_ITERATIONS} (got {self.iterations})"
            )
        floor = max(MIN_MEMORY_KIB, 8 * self.parallelism)
        if not floor <= self.memory_kib <= MAX_MEMORY_KIB:
            raise KeyDerivationError(
                f"Argon2 memory_kib must be between {floor} and {MAX_MEMORY_KIB} (got {self.memory_kib})"
            )
        return self


# ----------------------------------------------------------------------
# Authentication material
# ----------------------------------------------------------------------


def _as_bytes(value: Union[str, bytes, bytearray]) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


@dataclass(frozen=True, repr=False)
class Password:
    """Password-only authentication."""

    password: bytes

    def __post_init__(self):
        object.__setattr__(self, "password", _as_bytes(self.password))

    def __repr__(self) -> str:
        return "Password(***)"


@dataclass(frozen=True, repr=False)
class PasswordKeyfile:
    """Password combined with a keyfile as a second factor."""

    password: bytes
    keyfile: bytes

    def __post_init__(self):
        object.__setattr__(self, "password", _as_bytes(self.password))
        object.__setattr__(self, "keyfile", _as_bytes(self.keyfile))
        if not self.keyfile:
            raise ValueError("keyfile bytes must not be empty")

    def __repr__(self) -> str:
        return "PasswordKeyfile(***)"


Auth = Union[Password, PasswordKeyfile]


# ----------------------------------------------------------------------
# Vault structure
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class VaultHeader:
    """Decoded vault header. Only the salt and KDF parameters feed derivation."""

    salt: bytes
    kdf: KdfParams
    keyfile_hash: Optional[bytes] = None
    format_flags: int = 0
    environment: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def requires_keyfile(self) -> bool:
        return self.keyfile_hash is not None


@dataclass(frozen=True)
class SecretEntry:
    """One encrypted secret as stored in the secrets block."""

    name: str
    nonce: bytes = field(repr=False)
    ciphertext: bytes = field(repr=False)
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class SecretMetadata:
    """Name and timestamps of a secret, without any ciphertext."""

    name: str
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class AuditEvent:
    """Immutable record of one mutating operation."""

    operation: str
    environment: Optional[str]
    actor: str
    outcome: str = "success"
    key_name: Optional[str] = None
    details: Optional[str] = None
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "operation": self.operation,
            "environment": self.environment,
            "actor": self.actor,
            "outcome": self.outcome,
            "key_name": self.key_name,
            "details": self.details,
        }


@dataclass(frozen=True)
class EnvironmentInfo:
    """A vault file found in the vault directory."""

    name: str
    path: Path
    size: int


# ----------------------------------------------------------------------
# Naming rules
# ----------------------------------------------------------------------

MAX_SECRET_NAME_LEN = 256
MAX_ENVIRONMENT_NAME_LEN = 64

_SECRET_NAME_CHARS = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789_-."
)
_ENVIRONMENT_NAME_CHARS = frozenset("abcdefghijklmnopqrstuvwxyz0123456789-")


def validate_secret_name(name: str) -> str:
    """Secret names: ASCII letters, digits, ``_``, ``-`` and ``.``; case-sensitive."""
    if not isinstance(name, str) or not name:
        raise InvalidNameError("secret name cannot be empty")
    if len(name) > MAX_SECRET_NAME_LEN:
        raise InvalidNameError(f"secret name cannot exceed {MAX_SECRET_NAME_LEN} characters")
    if not set(name) <= _SECRET_NAME_CHARS:
        raise InvalidNameError(
            f"secret name '{name}' contains invalid characters; only ASCII letters, "
            "digits, underscores, hyphens and periods are allowed"
        )
    return name


def validate_environment_name(name: str) -> str:
    """Environment names: lowercase letters, digits and inner hyphens."""
    if not isinstance(name, str) or not name:
        raise InvalidNameError("environment name cannot be empty")
    if len(name) > MAX_ENVIRONMENT_NAME_LEN:
        raise InvalidNameError(
            f"environment name cannot exceed {MAX_ENVIRONMENT_NAME_LEN} characters"
        )
    if not set(name) <= _ENVIRONMENT_NAME_CHARS:
        raise InvalidNameError(
            f"environment name '{name}' is invalid; only lowercase letters, digits "
            "and hyphens are allowed"
        )
    if name.startswith("-") or name.endswith("-"):
        raise InvalidNameError(f"environment name '{name}' cannot start or end with a hyphen")
    return name
