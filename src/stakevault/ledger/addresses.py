# src/stakevault/ledger/addresses.py
from __future__ import annotations

import hashlib

from stakevault.ledger.constants import (
    SEED_CUSTODY,
    SEED_REWARD_RESERVE,
    SEED_STAKE_RECORD,
    SEED_TOKEN_ACCOUNT,
    SEED_VAULT_AUTHORITY,
)


def derive_address(*seeds: str) -> str:
    """Deterministic address from an ordered list of seeds.

    Seeds are length-prefixed before hashing so ("ab", "c") and ("a", "bc")
    never collide.
    """
    h = hashlib.sha256()
    for s in seeds:
        b = str(s).encode("utf-8")
        h.update(len(b).to_bytes(4, "big"))
        h.update(b)
    return h.hexdigest()


def stake_record_address(staker: str, mint: str) -> str:
    return derive_address(SEED_STAKE_RECORD, staker, mint)


def vault_authority_address(vault_id: str) -> str:
    return derive_address(SEED_VAULT_AUTHORITY, vault_id)


def associated_token_address(owner: str, mint: str) -> str:
    return derive_address(SEED_TOKEN_ACCOUNT, owner, mint)


def custody_address(authority: str, mint: str) -> str:
    return derive_address(SEED_CUSTODY, authority, mint)


def reward_reserve_address(authority: str, mint: str) -> str:
    return derive_address(SEED_REWARD_RESERVE, authority, mint)
