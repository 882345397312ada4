"""Unit tests for the core data models and naming rules."""

import pytest
from envvault.core.exceptions import InvalidNameError
from envvault.core.models import (
    AuditEvent,
    Password,
    PasswordKeyfile,
    VaultHeader,
    KdfParams,
    validate_environment_name,
    validate_secret_name,
)


@pytest.mark.parametrize("name", ["DB_URL", "api.key", "a-b", "X" * 256, "lower_case", "9"])
def test_valid_secret_names(name):
    assert validate_secret_name(name) == name


@pytest.mark.parametrize("name", ["", "X" * 257, "HAS SPACE", "emoji☃", "a=b", "a/b", None])
def test_invalid_secret_names(name):
    with pytest.raises(InvalidNameError):
        validate_secret_name(name)


def test_invalid_name_is_value_error():
    with pytest.raises(ValueError):
        validate_secret_name("")


@pytest.mark.parametrize("name", ["dev", "staging", "prod-eu-1", "a" * 64])
def test_valid_environment_names(name):
    assert validate_environment_name(name) == name


@pytest.mark.parametrize("name", ["", "Prod", "-dev", "dev-", "a" * 65, "dev_1", "dev.1"])
def test_invalid_environment_names(name):
    with pytest.raises(InvalidNameError):
        validate_environment_name(name)


def test_auth_repr_hides_secrets():
    assert "hunter2" not in repr(Password("hunter2"))
    assert "hunter2" not in repr(PasswordKeyfile("hunter2", b"k" * 32))


def test_auth_coerces_text():
    assert Password("pw").password == b"pw"
    assert PasswordKeyfile("pw", "kf").keyfile == b"kf"


def test_empty_keyfile_rejected():
    with pytest.raises(ValueError):
        PasswordKeyfile("pw", b"")


def test_header_requires_keyfile():
    header = VaultHeader(salt=b"s" * 32, kdf=KdfParams())
    assert not header.requires_keyfile


def test_audit_event_to_dict():
    event = AuditEvent(operation="set", environment="dev", actor="alice", key_name="A")
    record = event.to_dict()
    assert record["operation"] == "set"
    assert record["outcome"] == "success"
    assert record["key_name"] == "A"
    assert record["timestamp"]
