# src/stakevault/runtime/authority.py
from __future__ import annotations

"""Vault authority capability.

Custody and reward-reserve accounts are owned by the vault authority, not by
any user key. Settlement only debits those accounts (or mints under a mint
the vault controls) when handed a VaultAuthority instance; presenting the
authority's address string is not enough.

Instances are only produced by derive_vault_authority().
"""

from typing import Any

from stakevault.ledger.addresses import vault_authority_address

_DERIVE_TOKEN = object()


class VaultAuthority:
    __slots__ = ("_vault_id", "_address")

    def __init__(self, vault_id: str, address: str, *, _token: Any = None) -> None:
        if _token is not _DERIVE_TOKEN:
            raise TypeError("VaultAuthority cannot be constructed directly; use derive_vault_authority()")
        self._vault_id = str(vault_id)
        self._address = str(address)

    @property
    def vault_id(self) -> str:
        return self._vault_id

    @property
    def address(self) -> str:
        return self._address

    def __eq__(self, other: object) -> bool:
        return isinstance(other, VaultAuthority) and other._address == self._address

    def __hash__(self) -> int:
        return hash(("VaultAuthority", self._address))

    def __repr__(self) -> str:
        return f"VaultAuthority(vault_id={self._vault_id!r}, address={self._address[:12]}...)"


def derive_vault_authority(vault_id: str) -> VaultAuthority:
    vid = str(vault_id or "").strip()
    if not vid:
        raise ValueError("vault_id must be a non-empty string")
    return VaultAuthority(vid, vault_authority_address(vid), _token=_DERIVE_TOKEN)


def is_vault_authority(obj: Any) -> bool:
    return isinstance(obj, VaultAuthority)


__all__ = ["VaultAuthority", "derive_vault_authority", "is_vault_authority"]
