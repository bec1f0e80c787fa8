# src/stakevault/runtime/vault_store.py
from __future__ import annotations

"""ConfigStore and StakeRecord store access.

  state["config"]                   singleton vault configuration
  state["stakes"][record_address]   one record per (staker, stake mint)

Records are never deleted; a claimed record stays as history until the
holder's next stake reuses it.
"""

from typing import Any, Dict, Iterator, Optional, Tuple

from stakevault.ledger.addresses import stake_record_address
from stakevault.ledger.constants import DEFAULT_MAX_STAKE_AMOUNT
from stakevault.ledger.periods import PeriodTable, get_period_table
from stakevault.runtime.authority import VaultAuthority, derive_vault_authority
from stakevault.runtime.errors import ErrorKind, VaultError

Json = Dict[str, Any]


def get_config(state: Json) -> Optional[Json]:
    cfg = state.get("config")
    return cfg if isinstance(cfg, dict) else None


def require_config(state: Json) -> Json:
    cfg = get_config(state)
    if cfg is None:
        raise VaultError(ErrorKind.NOT_INITIALIZED, {})
    return cfg


def new_config(
    *,
    admin: str,
    period_table: str,
    payout_mode: str,
    authority: VaultAuthority,
    now: int,
) -> Json:
    return {
        "admin": str(admin),
        "staking_enabled": False,
        "staking_reward_rate": 0,
        "max_stake_amount": DEFAULT_MAX_STAKE_AMOUNT,
        "emergency_paused": False,
        "reward_reserve": "",
        "stake_mint": "",
        "custody_account": "",
        "period_table": str(period_table),
        "payout_mode": str(payout_mode),
        "vault_authority": authority.address,
        "initialized_at": int(now),
    }


def vault_authority(state: Json) -> VaultAuthority:
    vault_id = str(state.get("vault_id") or "").strip()
    if not vault_id:
        raise VaultError(ErrorKind.INVALID_INPUT, {"missing": "vault_id"})
    return derive_vault_authority(vault_id)


def period_table_for(cfg: Json) -> PeriodTable:
    return get_period_table(str(cfg.get("period_table") or ""))


def ensure_stakes(state: Json) -> Json:
    stakes = state.get("stakes")
    if not isinstance(stakes, dict):
        stakes = {}
        state["stakes"] = stakes
    return stakes


def get_stake(state: Json, staker: str, mint: str) -> Tuple[str, Optional[Json]]:
    addr = stake_record_address(staker, mint)
    rec = ensure_stakes(state).get(addr)
    return addr, (rec if isinstance(rec, dict) else None)


def is_active(rec: Optional[Json]) -> bool:
    if not isinstance(rec, dict):
        return False
    return int(rec.get("amount", 0)) > 0 and not bool(rec.get("claimed", False))


def iter_stakes(state: Json) -> Iterator[Tuple[str, Json]]:
    stakes = state.get("stakes")
    if not isinstance(stakes, dict):
        return
    for addr in sorted(stakes.keys()):
        rec = stakes[addr]
        if isinstance(rec, dict):
            yield addr, rec


def active_stake_count(state: Json) -> int:
    return sum(1 for _addr, rec in iter_stakes(state) if is_active(rec))


__all__ = [
    "active_stake_count",
    "ensure_stakes",
    "get_config",
    "get_stake",
    "is_active",
    "iter_stakes",
    "new_config",
    "period_table_for",
    "require_config",
    "vault_authority",
]
