"""
EnvironmentManager: named vault files inside a project's vault directory.

Structure Map for reference:
==============================
 - <project_dir>/
      - .envvault.toml          (optional settings)
      - <vault_dir>/
          - dev.vault
          - staging.vault
          - prod.vault
==============================
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence, Union

from . import storage
from .audit import AuditSink, current_actor, emit
from .diff import DiffResult, diff as diff_vaults
from .exceptions import (
    CommandError,
    CredentialStoreError,
    DuplicateError,
    EnvironmentNotFoundError,
)
from .interchange import read_file
from .models import AuditEvent, Auth, EnvironmentInfo, KdfParams, validate_environment_name
from .runner import run_with_secrets
from .vault import VaultStore
from ..config import Settings
from ..security.keystore import CredentialStore

logger = logging.getLogger(__name__)

VAULT_SUFFIX = ".vault"
GITIGNORE = ".gitignore"


def patch_gitignore(project_dir: Union[str, Path], entry: str) -> bool:
    """
    Append ``entry`` to the project's .gitignore unless a line already matches.

    Returns True when the file was changed. Write errors are logged, not raised.
    """
    path = Path(project_dir) / GITIGNORE
    try:
        existing = path.read_text(encoding="utf-8") if path.exists() else ""
        if any(line.strip() == entry for line in existing.splitlines()):
            return False
        separator = "" if existing == "" or existing.endswith("\n") else "\n"
        path.write_text(f"{existing}{separator}{entry}\n", encoding="utf-8")
    except OSError:
        logger.warning("could not update %s", path, exc_info=True)
        return False
    logger.info("added '%s' to %s", entry, path)
    return True


class EnvironmentManager:
    """Create, open, clone, diff and delete per-environment vaults."""

    def __init__(
        self,
        project_dir: Union[str, Path] = ".",
        settings: Optional[Settings] = None,
        audit_sink: Optional[AuditSink] = None,
        credential_store: Optional[CredentialStore] = None,
    ):
        self.project_dir = Path(project_dir).expanduser()
        self.settings = settings if settings is not None else Settings.load(self.project_dir)
        self.audit_sink = audit_sink
        self.credential_store = credential_store

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def vault_dir(self) -> Path:
        return self.settings.vault_root(self.project_dir)

    @property
    def default_environment(self) -> str:
        return self.settings.default_environment

    def vault_path(self, env: Optional[str] = None) -> Path:
        return self.settings.vault_path(self.project_dir, env or self.default_environment)

    def exists(self, env: str) -> bool:
        return self.vault_path(env).is_file()

    def _existing_path(self, env: str) -> Path:
        path = self.vault_path(env)
        if not path.is_file():
            raise EnvironmentNotFoundError(f"environment '{env}' not found: no vault file at {path}")
        return path

    def list(self) -> List[EnvironmentInfo]:
        """Vault files in the vault directory, sorted by environment name."""
        if not self.vault_dir.is_dir():
            return []
        envs = []
        for path in self.vault_dir.iterdir():
            if path.suffix != VAULT_SUFFIX or not path.is_file():
                continue
            try:
                validate_environment_name(path.stem)
            except ValueError:
                logger.debug("ignoring %s: not a valid environment name", path.name)
                continue
            envs.append(EnvironmentInfo(name=path.stem, path=path, size=path.stat().st_size))
        return sorted(envs, key=lambda e: e.name)

    # ------------------------------------------------------------------
    # Vault lifecycle
    # ------------------------------------------------------------------

    def init(
        self,
        env: str,
        auth: Auth,
        seed: Optional[Mapping[str, Union[str, bytes]]] = None,
        params: Optional[KdfParams] = None,
        gitignore: bool = False,
    ) -> VaultStore:
        """
        Create and commit a new vault for ``env``, optionally seeded with secrets.

        With ``gitignore`` the vault directory is added to the project's
        .gitignore. Returns the vault unlocked; the caller owns it and must
        close it.
        """
        path = self.vault_path(env)
        if path.exists():
            raise DuplicateError(f"vault already exists at {path}")

        store = VaultStore.create(
            auth,
            params=params or self.settings.kdf_params(),
            environment=env,
            path=path,
            audit_sink=self.audit_sink,
        )
        try:
            if seed:
                store.import_plaintext(seed)
            store.save()
        except BaseException:
            store.close()
            raise
        if gitignore:
            patch_gitignore(self.project_dir, f"{self.settings.vault_dir.rstrip('/')}/")
        logger.info("initialized environment '%s' at %s", env, path)
        return store

    def init_from_file(
        self,
        env: str,
        auth: Auth,
        source: Union[str, Path],
        fmt: Optional[str] = None,
        params: Optional[KdfParams] = None,
        gitignore: bool = False,
    ) -> VaultStore:
        """Create ``env`` seeded from an existing .env or JSON file."""
        return self.init(env, auth, seed=read_file(source, fmt), params=params, gitignore=gitignore)

    def load(self, env: str) -> VaultStore:
        """The vault for ``env`` in the locked state."""
        return VaultStore.load(self._existing_path(env), audit_sink=self.audit_sink)

    def open(self, env: str, auth: Auth) -> VaultStore:
        return VaultStore.open(self._existing_path(env), auth, audit_sink=self.audit_sink)

    def clone(
        self,
        source_env: str,
        target_env: str,
        auth: Auth,
        new_auth: Optional[Auth] = None,
    ) -> int:
        """
        Copy every secret of ``source_env`` into a new ``target_env`` vault.

        The target always gets its own salt. Without ``new_auth`` it keeps the
        source's credentials and KDF parameters; with it, the new credentials
        and the configured parameters. Returns the number of secrets copied.
        """
        source_path = self._existing_path(source_env)
        target_path = self.vault_path(target_env)
        if target_path.exists():
            raise DuplicateError(f"vault already exists at {target_path}")

        with VaultStore.open(source_path, auth) as source:
            plaintexts = source.export_plaintext()
            params = source.header.kdf if new_auth is None else self.settings.kdf_params()

        count = len(plaintexts)
        try:
            with VaultStore.create(
                new_auth or auth,
                params=params,
                environment=target_env,
                path=target_path,
            ) as target:
                target.import_plaintext(plaintexts)
                target.save()
        finally:
            plaintexts.clear()

        logger.info("cloned %d secrets from '%s' to '%s'", count, source_env, target_env)
        self._audit("env-clone", target_env, details=f"{count} secrets, {source_env} -> {target_env}")
        return count

    def delete(self, env: str) -> Path:
        """
        Remove the vault file for ``env``.

        Asking the user for confirmation is the caller's job. Any cached
        password for the vault is forgotten as well.
        """
        path = self._existing_path(env)
        storage.remove(path)
        if self.credential_store is not None:
            try:
                self.credential_store.delete(str(path))
            except CredentialStoreError:
                logger.warning("could not forget cached password for '%s'", env, exc_info=True)
        logger.info("deleted environment '%s' (%s)", env, path)
        self._audit("env-delete", env, details=f"deleted {env}")
        return path

    def run(self, env: str, auth: Auth, command: Sequence[str], clean_env: bool = False) -> int:
        """
        Run ``command`` with the secrets of ``env`` as environment variables.

        The vault is closed before the child starts. Returns the child's exit
        code; a non-zero code is returned, not raised.
        """
        if not command:
            raise CommandError("no command specified")
        with self.open(env, auth) as store:
            secrets = store.export_plaintext()
        try:
            return run_with_secrets(command, secrets, clean_env=clean_env)
        finally:
            secrets.clear()

    def diff(
        self,
        env_a: str,
        env_b: str,
        auth_a: Auth,
        auth_b: Optional[Auth] = None,
        show_values: bool = False,
    ) -> DiffResult:
        """Compare two environments; ``auth_b`` defaults to ``auth_a``."""
        with self.open(env_a, auth_a) as vault_a, self.open(env_b, auth_b or auth_a) as vault_b:
            return diff_vaults(vault_a, vault_b, show_values=show_values)

    # ------------------------------------------------------------------
    # Credential store
    # ------------------------------------------------------------------

    def resolve_password(self, env: str, prompt: Callable[[], str]) -> str:
        """
        Cached password for ``env`` if the credential store has one, else ``prompt()``.

        The engine only reads from the store here; it never writes the password.
        """
        path = self.vault_path(env)
        if self.credential_store is not None:
            try:
                cached = self.credential_store.retrieve(str(path))
            except CredentialStoreError:
                logger.warning("credential store unavailable; falling back to prompt", exc_info=True)
                cached = None
            if cached is not None:
                logger.debug("using cached password for '%s'", env)
                return cached
        return prompt()

    def remember_password(self, env: str, password: str) -> None:
        if self.credential_store is None:
            raise CredentialStoreError("no credential store configured")
        self.credential_store.store(str(self.vault_path(env)), password)

    def forget_password(self, env: str) -> None:
        if self.credential_store is None:
            raise CredentialStoreError("no credential store configured")
        self.credential_store.delete(str(self.vault_path(env)))

    def _audit(self, operation: str, env: str, details: Optional[str] = None) -> None:
        emit(
            self.audit_sink,
            AuditEvent(operation=operation, environment=env, actor=current_actor(), details=details),
        )
