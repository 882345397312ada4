"""
Diff engine: compare the decrypted contents of two unlocked vaults
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

from .exceptions import VaultStateError
from .vault import VaultStore
from ..security.crypto import verify


@dataclass(frozen=True)
class DiffResult:
    """
    Partition of the union of secret names.

    ``values`` is only filled in show_values mode and maps each differing or
    identical name to its ``(a, b)`` plaintext pair.
    """

    only_in_a: Tuple[str, ...] = ()
    only_in_b: Tuple[str, ...] = ()
    differing: Tuple[str, ...] = ()
    identical: Tuple[str, ...] = ()
    values: Dict[str, Tuple[bytes, bytes]] = field(default_factory=dict, repr=False)

    @property
    def has_changes(self) -> bool:
        return bool(self.only_in_a or self.only_in_b or self.differing)

    def summary(self) -> str:
        return (
            f"{len(self.only_in_b)} added, {len(self.only_in_a)} removed, "
            f"{len(self.differing)} changed, {len(self.identical)} unchanged"
        )


def diff(vault_a: VaultStore, vault_b: VaultStore, show_values: bool = False) -> DiffResult:
    """
    Compare two unlocked vaults by name and by plaintext value.

    Ciphertexts are never compared (random nonces make them always differ);
    plaintexts are compared in constant time.
    """
    for vault in (vault_a, vault_b):
        if not vault.is_unlocked:
            raise VaultStateError("both vaults must be unlocked to diff them")

    names_a = set(vault_a.list())
    names_b = set(vault_b.list())

    differing = []
    identical = []
    values: Dict[str, Tuple[bytes, bytes]] = {}
    for name in sorted(names_a & names_b):
        a = vault_a.get(name)
        b = vault_b.get(name)
        if verify(a, b):
            identical.append(name)
        else:
            differing.append(name)
        if show_values:
            values[name] = (a, b)

    return DiffResult(
        only_in_a=tuple(sorted(names_a - names_b)),
        only_in_b=tuple(sorted(names_b - names_a)),
        differing=tuple(differing),
        identical=tuple(identical),
        values=values,
    )
