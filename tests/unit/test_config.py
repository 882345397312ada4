"""Unit tests for project settings."""

import pytest
from envvault.config import CONFIG_FILE_NAME, Settings
from envvault.core.exceptions import ConfigError
from envvault.core.models import KdfParams


def test_defaults_without_file(tmp_path):
    settings = Settings.load(tmp_path, environ={})
    assert settings == Settings()
    assert settings.kdf_params() == KdfParams()
    assert settings.vault_path(tmp_path, "dev") == tmp_path / ".envvault" / "dev.vault"


def test_load_from_toml(tmp_path):
    (tmp_path / CONFIG_FILE_NAME).write_text(
        'default_environment = "staging"\nvault_dir = "secrets"\nargon2_iterations = 4\n'
    )
    settings = Settings.load(tmp_path, environ={})
    assert settings.default_environment == "staging"
    assert settings.vault_root(tmp_path) == tmp_path / "secrets"
    assert settings.argon2_iterations == 4


def test_invalid_toml(tmp_path):
    (tmp_path / CONFIG_FILE_NAME).write_text("default_environment = ")
    with pytest.raises(ConfigError, match="Failed to parse"):
        Settings.load(tmp_path, environ={})


@pytest.mark.parametrize(
    "content,match",
    [
        ('colour = "blue"\n', "unknown settings: colour"),
        ('argon2_iterations = "3"\n', "must be of type int"),
        ("argon2_iterations = true\n", "must be of type int"),
        ("vault_dir = 3\n", "must be of type str"),
        ('default_environment = "Prod"\n', "environment name"),
        ("argon2_memory_kib = 1024\n", "memory_kib"),
        ('vault_dir = ""\n', "vault_dir cannot be empty"),
    ],
)
def test_invalid_settings(tmp_path, content, match):
    (tmp_path / CONFIG_FILE_NAME).write_text(content)
    with pytest.raises(ConfigError, match=match):
        Settings.load(tmp_path, environ={})


def test_environment_overrides(tmp_path):
    settings = Settings.load(
        tmp_path,
        environ={
            "ENVVAULT_ENV": "prod",
            "ENVVAULT_VAULT_DIR": "vaults",
            "ENVVAULT_ARGON2_MEMORY_KIB": "8192",
            "ENVVAULT_ARGON2_ITERATIONS": "1",
            "ENVVAULT_ARGON2_PARALLELISM": "1",
            "UNRELATED": "x",
        },
    )
    assert settings.default_environment == "prod"
    assert settings.vault_dir == "vaults"
    assert settings.kdf_params() == KdfParams(8192, 1, 1)


def test_override_beats_file(tmp_path):
    (tmp_path / CONFIG_FILE_NAME).write_text('default_environment = "staging"\n')
    settings = Settings.load(tmp_path, environ={"ENVVAULT_ENV": "prod"})
    assert settings.default_environment == "prod"


def test_empty_override_ignored(tmp_path):
    assert Settings.load(tmp_path, environ={"ENVVAULT_ENV": ""}) == Settings()


def test_bad_integer_override(tmp_path):
    with pytest.raises(ConfigError, match="must be an integer"):
        Settings.load(tmp_path, environ={"ENVVAULT_ARGON2_ITERATIONS": "many"})


def test_vault_path_validates_environment(tmp_path):
    with pytest.raises(ValueError):
        Settings().vault_path(tmp_path, "../escape")
