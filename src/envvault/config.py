"""Project configuration loaded from ``.envvault.toml``.

Every field has a default so the engine works without any config file.
Environment variables override the file:

- ``ENVVAULT_ENV``                 -> default_environment
- ``ENVVAULT_VAULT_DIR``           -> vault_dir
- ``ENVVAULT_ARGON2_MEMORY_KIB``   -> argon2_memory_kib
- ``ENVVAULT_ARGON2_ITERATIONS``   -> argon2_iterations
- ``ENVVAULT_ARGON2_PARALLELISM``  -> argon2_parallelism
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Mapping, Optional

from envvault.core.exceptions import ConfigError, KeyDerivationError
from envvault.core.models import KdfParams, validate_environment_name

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".envvault.toml"

ENV_OVERRIDES = {
    "ENVVAULT_ENV": "default_environment",
    "ENVVAULT_VAULT_DIR": "vault_dir",
    "ENVVAULT_ARGON2_MEMORY_KIB": "argon2_memory_kib",
    "ENVVAULT_ARGON2_ITERATIONS": "argon2_iterations",
    "ENVVAULT_ARGON2_PARALLELISM": "argon2_parallelism",
}


@dataclass(frozen=True)
class Settings:
    default_environment: str = "dev"
    vault_dir: str = ".envvault"
    argon2_memory_kib: int = 65536
    argon2_iterations: int = 3
    argon2_parallelism: int = 4

    @classmethod
    def from_mapping(cls, data: Mapping, source: str = "<mapping>") -> "Settings":
        """Build settings from a parsed config table, rejecting unknown keys."""
        known = {f.name: f.type for f in fields(cls)}
        unknown = set(data) - set(known)
        if unknown:
            raise ConfigError(f"{source}: unknown settings: {', '.join(sorted(unknown))}")

        values = {}
        for name, value in data.items():
            expected = int if known[name] == "int" else str
            if not isinstance(value, expected) or isinstance(value, bool):
                raise ConfigError(f"{source}: '{name}' must be of type {expected.__name__}")
            values[name] = value
        return cls(**values).validate(source)

    @classmethod
    def load(cls, project_dir: Path | str, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Load ``<project_dir>/.envvault.toml`` and apply environment overrides.

        A missing file yields the defaults; a file that cannot be parsed is a
        ``ConfigError``.
        """
        config_path = Path(project_dir) / CONFIG_FILE_NAME
        if config_path.exists():
            try:
                with open(config_path, "rb") as f:
                    data = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigError(f"Failed to parse {config_path}: {e}") from e
            settings = cls.from_mapping(data, source=str(config_path))
            logger.debug("loaded settings from %s", config_path)
        else:
            settings = cls()

        return settings.with_overrides(os.environ if environ is None else environ)

    def with_overrides(self, environ: Mapping[str, str]) -> "Settings":
        changes = {}
        for var, name in ENV_OVERRIDES.items():
            raw = environ.get(var)
            if raw is None or raw == "":
                continue
            if name.startswith("argon2_"):
                try:
                    changes[name] = int(raw)
                except ValueError:
                    raise ConfigError(f"{var} must be an integer, got {raw!r}") from None
            else:
                changes[name] = raw
        if not changes:
            return self
        return replace(self, **changes).validate("environment")

    def validate(self, source: str = "settings") -> "Settings":
        try:
            validate_environment_name(self.default_environment)
        except ValueError as e:
            raise ConfigError(f"{source}: {e}") from None
        if not self.vault_dir:
            raise ConfigError(f"{source}: vault_dir cannot be empty")
        try:
            self.kdf_params().validate()
        except KeyDerivationError as e:
            raise ConfigError(f"{source}: {e}") from None
        return self

    def kdf_params(self) -> KdfParams:
        return KdfParams(
            memory_kib=self.argon2_memory_kib,
            iterations=self.argon2_iterations,
            parallelism=self.argon2_parallelism,
        )

    def vault_root(self, project_dir: Path | str) -> Path:
        return Path(project_dir) / self.vault_dir

    def vault_path(self, project_dir: Path | str, env_name: str) -> Path:
        """Example: ``project_dir/.envvault/dev.vault``."""
        return self.vault_root(project_dir) / f"{validate_environment_name(env_name)}.vault"
