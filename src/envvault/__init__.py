"""EnvVault: encrypted, integrity-protected per-environment secret vaults."""

from .core.exceptions import (
    EnvVaultError,
    FormatError,
    TruncatedError,
    UnsupportedVersionError,
    AuthenticationError,
    KeyfileMismatchError,
    NotFoundError,
    EnvironmentNotFoundError,
    DuplicateError,
    VaultStateError,
    InvalidNameError,
    InterchangeError,
    CommandError,
)
from .core.models import Password, PasswordKeyfile, KdfParams, VaultState, AuditEvent
from .core.vault import VaultStore
from .core.environments import EnvironmentManager
from .core.diff import DiffResult, diff
from .config import Settings

__version__ = "0.3.0"

__all__ = [
    "EnvVaultError",
    "FormatError",
    "TruncatedError",
    "UnsupportedVersionError",
    "AuthenticationError",
    "KeyfileMismatchError",
    "NotFoundError",
    "EnvironmentNotFoundError",
    "DuplicateError",
    "VaultStateError",
    "InvalidNameError",
    "InterchangeError",
    "CommandError",
    "Password",
    "PasswordKeyfile",
    "KdfParams",
    "VaultState",
    "AuditEvent",
    "VaultStore",
    "EnvironmentManager",
    "DiffResult",
    "diff",
    "Settings",
]
