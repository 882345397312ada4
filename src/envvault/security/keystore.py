"""OS credential store integration using keyring for optional password caching.

The engine only ever *retrieves* a cached vault password before falling back
to a prompt. Storing one is an explicit opt-in by the caller. Do not assume
keyring provides hardware-backed security on all platforms.
"""
import logging
from pathlib import Path
from typing import Optional, Protocol

from envvault.core.exceptions import CredentialStoreError

try:
    import keyring
    from keyring.errors import KeyringError, PasswordDeleteError
except ImportError:
    keyring = None

logger = logging.getLogger(__name__)

SERVICE_NAME = "envvault"


class CredentialStore(Protocol):
    def store(self, vault_path: str, password: str) -> None: ...

    def retrieve(self, vault_path: str) -> Optional[str]: ...

    def delete(self, vault_path: str) -> None: ...


def entry_key(vault_path) -> str:
    """Keyring account for a vault; resolved so relative paths share an entry."""
    return f"vault:{Path(vault_path).expanduser().resolve()}"


def _require_keyring():
    if keyring is None:
        raise CredentialStoreError(
            "keyring package is not available; install keyring to use credential caching"
        )


def assess_keyring_backend() -> tuple[bool, str]:
    """Return (is_secure, message) describing the current keyring backend.

    Heuristics are used because the `keyring` package exposes different backends
    across platforms. If `keyring` is not available this returns (False, reason).
    """
    if keyring is None:
        return False, "keyring package is not installed"

    try:
        backend = keyring.get_keyring()
    except Exception as e:
        return False, f"failed to get keyring backend: {e}"

    name = backend.__class__.__name__
    priority = getattr(backend, "priority", None)

    insecure_indicators = ("Plaintext", "Uncrypted", "Simple", "File", "Null", "Fail")
    if any(tok in name for tok in insecure_indicators):
        return False, f"insecure backend detected: {name}"

    if priority is not None and priority <= 0:
        return False, f"no suitable secure keyring backend available (priority={priority}, backend={name})"

    # treat known platform backends as acceptable
    if "Win" in name or "Keychain" in name or "SecretService" in name or "KWallet" in name:
        return True, f"backend looks acceptable: {name} (priority={priority})"

    return True, f"unknown backend '{name}', treat with caution (priority={priority})"


class KeyringCredentialStore:
    """Vault passwords in the OS keyring, one entry per vault file."""

    def __init__(self, service: str = SERVICE_NAME, force: bool = False):
        self.service = service
        self.force = force

    def store(self, vault_path: str, password: str) -> None:
        """Cache ``password`` for ``vault_path``; refuses insecure backends unless forced."""
        _require_keyring()
        if not self.force:
            secure, msg = assess_keyring_backend()
            if not secure:
                raise CredentialStoreError(
                    f"refusing to store vault password in OS keystore: {msg}; "
                    "pass force=True to override if you understand the risk"
                )
        try:
            keyring.set_password(self.service, entry_key(vault_path), password)
        except KeyringError as e:
            raise CredentialStoreError(f"failed to store password in keyring: {e}") from e

    def retrieve(self, vault_path: str) -> Optional[str]:
        """Cached password for ``vault_path`` or None when nothing is stored."""
        _require_keyring()
        try:
            return keyring.get_password(self.service, entry_key(vault_path))
        except KeyringError as e:
            raise CredentialStoreError(f"failed to read from keyring: {e}") from e

    def delete(self, vault_path: str) -> None:
        """Forget the cached password; an absent entry is not an error."""
        _require_keyring()
        try:
            keyring.delete_password(self.service, entry_key(vault_path))
        except PasswordDeleteError:
            logger.debug("no keyring entry to delete for %s", vault_path)
        except KeyringError as e:
            raise CredentialStoreError(f"failed to delete from keyring: {e}") from e
