"""Unit tests for atomic vault file persistence."""

import os

import pytest
from unittest.mock import patch
from envvault.core import storage


def test_commit_creates_file_and_parents(tmp_path):
    path = tmp_path / "nested" / "dev.vault"
    storage.commit(path, b"data")
    assert storage.read(path) == b"data"


def test_commit_replaces_existing(tmp_path):
    path = tmp_path / "dev.vault"
    storage.commit(path, b"old")
    storage.commit(path, b"new")
    assert path.read_bytes() == b"new"


def test_commit_leaves_no_temp_files(tmp_path):
    path = tmp_path / "dev.vault"
    storage.commit(path, b"data")
    assert sorted(p.name for p in tmp_path.iterdir()) == ["dev.vault"]


def test_failed_rename_keeps_previous_file(tmp_path):
    """A crash before the rename leaves the old file untouched and no temp behind."""
    path = tmp_path / "dev.vault"
    storage.commit(path, b"old")
    with patch("envvault.core.storage.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(OSError, match="disk full"):
            storage.commit(path, b"new")
    assert path.read_bytes() == b"old"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["dev.vault"]


def test_failed_write_cleans_up(tmp_path):
    path = tmp_path / "dev.vault"
    with patch("envvault.core.storage.os.fsync", side_effect=OSError("io error")):
        with pytest.raises(OSError):
            storage.commit(path, b"data")
    assert not path.exists()
    assert list(tmp_path.iterdir()) == []


def test_read_missing_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        storage.read(tmp_path / "missing.vault")


def test_remove(tmp_path):
    path = tmp_path / "dev.vault"
    storage.commit(path, b"data")
    storage.remove(path)
    assert not path.exists()


def test_commit_leaves_directory_sync_to_caller(tmp_path):
    """commit() returns once the rename is done; the directory fsync is separate."""
    with patch("envvault.core.storage.sync_directory") as mock_sync:
        storage.commit(tmp_path / "dev.vault", b"data")
    mock_sync.assert_not_called()


@pytest.mark.skipif(os.name != "posix", reason="directory fsync is POSIX only")
def test_sync_directory_fsyncs_parent(tmp_path):
    path = tmp_path / "dev.vault"
    storage.commit(path, b"data")
    with patch("envvault.core.storage.os.fsync") as mock_fsync:
        storage.sync_directory(path)
    mock_fsync.assert_called_once()


def test_remove_syncs_directory(tmp_path):
    path = tmp_path / "dev.vault"
    storage.commit(path, b"data")
    with patch("envvault.core.storage.sync_directory") as mock_sync:
        storage.remove(path)
    mock_sync.assert_called_once_with(path)
