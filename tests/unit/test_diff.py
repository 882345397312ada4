"""Unit tests for the diff engine."""

import pytest
from envvault.core.diff import DiffResult, diff
from envvault.core.exceptions import VaultStateError
from envvault.core.models import KdfParams, Password
from envvault.core.vault import VaultStore

FAST = KdfParams(memory_kib=8192, iterations=1, parallelism=1)


def _vault(secrets):
    vault = VaultStore.create(Password("pw"), params=FAST)
    vault.import_plaintext(secrets)
    return vault


@pytest.fixture
def pair():
    a = _vault({"A": "1", "B": "2", "C": "3"})
    b = _vault({"B": "2", "C": "changed", "D": "4"})
    yield a, b
    a.close()
    b.close()


def test_diff_partitions_names(pair):
    result = diff(*pair)
    assert result.only_in_a == ("A",)
    assert result.only_in_b == ("D",)
    assert result.differing == ("C",)
    assert result.identical == ("B",)
    assert result.values == {}
    assert result.has_changes
    assert result.summary() == "1 added, 1 removed, 1 changed, 1 unchanged"


def test_diff_show_values(pair):
    result = diff(*pair, show_values=True)
    assert result.values == {"B": (b"2", b"2"), "C": (b"3", b"changed")}


def test_diff_with_itself_is_all_identical(pair):
    a, _ = pair
    result = diff(a, a)
    assert result.identical == ("A", "B", "C")
    assert not result.has_changes


def test_diff_ignores_ciphertext():
    """Equal plaintexts under different salts and nonces compare identical."""
    a = _vault({"X": "same"})
    b = _vault({"X": "same"})
    try:
        assert diff(a, b).identical == ("X",)
    finally:
        a.close()
        b.close()


def test_diff_requires_unlocked(pair):
    a, b = pair
    b.close()
    with pytest.raises(VaultStateError):
        diff(a, b)


def test_empty_result():
    assert not DiffResult().has_changes
