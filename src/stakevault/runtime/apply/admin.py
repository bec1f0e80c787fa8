# src/stakevault/runtime/apply/admin.py
from __future__ import annotations

from typing import Any, Dict, Optional, Set

from stakevault.ledger.addresses import associated_token_address, custody_address, reward_reserve_address
from stakevault.ledger.arith import is_u64
from stakevault.ledger.constants import DEFAULT_PERIOD_TABLE, PAYOUT_MINT, PAYOUT_MODES, PAYOUT_RESERVE
from stakevault.ledger.periods import PeriodError, get_period_table
from stakevault.runtime import settlement
from stakevault.runtime.admin_gate import require_admin
from stakevault.runtime.apply.accounts import is_reserved_signer
from stakevault.runtime.authority import VaultAuthority
from stakevault.runtime.errors import ErrorKind, VaultError
from stakevault.runtime.events import EVENT_EMERGENCY_PAUSE, EVENT_RESERVE_DEPOSIT, emit_config_update, emit_event
from stakevault.runtime.tx_admission_types import TxEnvelope
from stakevault.runtime.vault_store import active_stake_count, get_config, new_config, require_config, vault_authority

Json = Dict[str, Any]


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int, float)) else ""


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _require_bool(payload: Json, key: str) -> bool:
    v = payload.get(key)
    if not isinstance(v, bool):
        raise VaultError(ErrorKind.INVALID_INPUT, {"field": key, "expected": "bool", "got": v})
    return v


def _require_u64(payload: Json, key: str) -> int:
    v = payload.get(key)
    if not is_u64(v):
        raise VaultError(ErrorKind.INVALID_INPUT, {"field": key, "expected": "u64", "got": v})
    return int(v)


def _bind_stake_mint(state: Json, cfg: Json, mint: str, authority: VaultAuthority) -> None:
    """Point the vault at `mint` and open its custody account."""
    m = settlement.get_mint(state, mint)
    if m is None:
        raise VaultError(ErrorKind.UNKNOWN_MINT, {"mint": mint})

    if cfg.get("payout_mode") == PAYOUT_MINT:
        if not bool(m.get("vault_controlled", False)) or m.get("mint_authority") != authority.address:
            raise VaultError(
                ErrorKind.MINT_AUTHORITY_MISMATCH,
                {"mint": mint, "mint_authority": m.get("mint_authority"), "vault_authority": authority.address},
            )

    custody = settlement.open_account(
        state,
        owner=authority.address,
        mint=mint,
        address=custody_address(authority.address, mint),
        authority=authority,
    )
    cfg["stake_mint"] = mint
    cfg["custody_account"] = custody["address"]

    reserve = _as_str(cfg.get("reward_reserve"))
    if reserve:
        acct = settlement.get_account(state, reserve)
        if acct is None or acct.get("mint") != mint:
            cfg["reward_reserve"] = ""


def _apply_vault_initialize(state: Json, env: TxEnvelope, now: int) -> Json:
    if get_config(state) is not None:
        raise VaultError(ErrorKind.ALREADY_INITIALIZED, {})

    payload = _as_dict(env.payload)
    admin = _as_str(env.signer)
    if not admin or is_reserved_signer(state, admin):
        raise VaultError(ErrorKind.INVALID_INPUT, {"field": "admin", "got": admin})

    table_name = _as_str(payload.get("period_table")) or DEFAULT_PERIOD_TABLE
    try:
        table = get_period_table(table_name)
    except PeriodError as e:
        raise VaultError(ErrorKind.INVALID_INPUT, e.details) from e

    payout_mode = (_as_str(payload.get("payout_mode")) or PAYOUT_RESERVE).lower()
    if payout_mode not in PAYOUT_MODES:
        raise VaultError(ErrorKind.INVALID_INPUT, {"field": "payout_mode", "got": payout_mode, "allowed": list(PAYOUT_MODES)})

    authority = vault_authority(state)
    cfg = new_config(admin=admin, period_table=table.name, payout_mode=payout_mode, authority=authority, now=now)

    stake_mint = _as_str(payload.get("stake_mint"))
    if stake_mint:
        _bind_stake_mint(state, cfg, stake_mint, authority)

    state["config"] = cfg
    return {
        "applied": "VAULT_INITIALIZE",
        "admin": admin,
        "period_table": table.name,
        "payout_mode": payout_mode,
        "vault_authority": authority.address,
        "stake_mint": cfg["stake_mint"],
    }


def _apply_vault_configure(state: Json, env: TxEnvelope, now: int) -> Json:
    cfg = require_config(state)
    admin = require_admin(cfg, env.signer)

    payload = _as_dict(env.payload)
    enabled = _require_bool(payload, "enabled")
    rate = _require_u64(payload, "reward_rate")

    old_enabled = bool(cfg.get("staking_enabled", False))
    old_rate = int(cfg.get("staking_reward_rate", 0))
    cfg["staking_enabled"] = enabled
    cfg["staking_reward_rate"] = rate

    emit_config_update(state, admin=admin, field="staking_enabled", old_value=old_enabled, new_value=enabled, now=now)
    emit_config_update(state, admin=admin, field="staking_reward_rate", old_value=old_rate, new_value=rate, now=now)

    return {"applied": "VAULT_CONFIGURE", "staking_enabled": enabled, "staking_reward_rate": rate}


def _apply_vault_set_emergency_pause(state: Json, env: TxEnvelope, now: int) -> Json:
    cfg = require_config(state)
    admin = require_admin(cfg, env.signer)

    payload = _as_dict(env.payload)
    paused = _require_bool(payload, "paused")
    reason = payload.get("reason", "")
    if not isinstance(reason, str):
        raise VaultError(ErrorKind.INVALID_INPUT, {"field": "reason", "expected": "str"})

    cfg["emergency_paused"] = paused
    emit_event(state, EVENT_EMERGENCY_PAUSE, now=now, admin=admin, paused=paused, reason=reason)

    return {"applied": "VAULT_SET_EMERGENCY_PAUSE", "emergency_paused": paused, "reason": reason}


def _apply_vault_update_admin(state: Json, env: TxEnvelope, now: int) -> Json:
    cfg = require_config(state)
    admin = require_admin(cfg, env.signer)

    new_admin = _as_str(_as_dict(env.payload).get("new_admin"))
    if not new_admin or is_reserved_signer(state, new_admin):
        raise VaultError(ErrorKind.INVALID_INPUT, {"field": "new_admin", "got": new_admin})

    cfg["admin"] = new_admin
    emit_config_update(state, admin=admin, field="admin", old_value=admin, new_value=new_admin, now=now)

    return {"applied": "VAULT_UPDATE_ADMIN", "old_admin": admin, "new_admin": new_admin}


def _apply_vault_update_max_stake(state: Json, env: TxEnvelope, now: int) -> Json:
    cfg = require_config(state)
    admin = require_admin(cfg, env.signer)

    max_amount = _require_u64(_as_dict(env.payload), "max_amount")
    old = int(cfg.get("max_stake_amount", 0))
    cfg["max_stake_amount"] = max_amount
    emit_config_update(state, admin=admin, field="max_stake_amount", old_value=old, new_value=max_amount, now=now)

    return {"applied": "VAULT_UPDATE_MAX_STAKE", "max_stake_amount": max_amount}


def _apply_vault_set_stake_mint(state: Json, env: TxEnvelope, now: int) -> Json:
    cfg = require_config(state)
    admin = require_admin(cfg, env.signer)

    mint = _as_str(_as_dict(env.payload).get("mint"))
    if not mint:
        raise VaultError(ErrorKind.INVALID_INPUT, {"field": "mint"})

    locked = active_stake_count(state)
    if locked:
        raise VaultError(ErrorKind.ACTIVE_STAKES_EXIST, {"active_stakes": locked})

    old = _as_str(cfg.get("stake_mint"))
    _bind_stake_mint(state, cfg, mint, vault_authority(state))
    emit_config_update(state, admin=admin, field="stake_mint", old_value=old, new_value=mint, now=now)

    return {"applied": "VAULT_SET_STAKE_MINT", "stake_mint": mint, "custody_account": cfg["custody_account"]}


def _require_reserve_mode(cfg: Json) -> None:
    if cfg.get("payout_mode") != PAYOUT_RESERVE:
        raise VaultError(ErrorKind.PAYOUT_MODE_MISMATCH, {"payout_mode": cfg.get("payout_mode")})


def _require_stake_mint(cfg: Json) -> str:
    mint = _as_str(cfg.get("stake_mint"))
    if not mint:
        raise VaultError(ErrorKind.STAKE_MINT_NOT_CONFIGURED, {})
    return mint


def _apply_reward_reserve_init(state: Json, env: TxEnvelope, now: int) -> Json:
    cfg = require_config(state)
    admin = require_admin(cfg, env.signer)
    _require_reserve_mode(cfg)
    mint = _require_stake_mint(cfg)

    authority = vault_authority(state)
    acct = settlement.open_account(
        state,
        owner=authority.address,
        mint=mint,
        address=reward_reserve_address(authority.address, mint),
        authority=authority,
    )

    old = _as_str(cfg.get("reward_reserve"))
    cfg["reward_reserve"] = acct["address"]
    emit_config_update(state, admin=admin, field="reward_reserve", old_value=old, new_value=acct["address"], now=now)

    return {"applied": "VAULT_REWARD_RESERVE_INIT", "reward_reserve": acct["address"]}


def _apply_reward_reserve_set(state: Json, env: TxEnvelope, now: int) -> Json:
    cfg = require_config(state)
    admin = require_admin(cfg, env.signer)
    _require_reserve_mode(cfg)
    mint = _require_stake_mint(cfg)

    reserve = _as_str(_as_dict(env.payload).get("reserve"))
    authority = vault_authority(state)
    acct = settlement.get_account(state, reserve) if reserve else None
    valid = (
        acct is not None
        and acct.get("mint") == mint
        and bool(acct.get("vault_owned", False))
        and acct.get("owner") == authority.address
        and reserve != _as_str(cfg.get("custody_account"))
    )
    if not valid:
        raise VaultError(ErrorKind.INVALID_REWARD_RESERVE, {"reserve": reserve})

    old = _as_str(cfg.get("reward_reserve"))
    cfg["reward_reserve"] = reserve
    emit_config_update(state, admin=admin, field="reward_reserve", old_value=old, new_value=reserve, now=now)

    return {"applied": "VAULT_REWARD_RESERVE_SET", "reward_reserve": reserve}


def _apply_reward_reserve_deposit(state: Json, env: TxEnvelope, now: int) -> Json:
    cfg = require_config(state)
    admin = require_admin(cfg, env.signer)
    _require_reserve_mode(cfg)
    mint = _require_stake_mint(cfg)

    reserve = _as_str(cfg.get("reward_reserve"))
    if not reserve:
        raise VaultError(ErrorKind.REWARD_RESERVE_NOT_CONFIGURED, {})

    amount = _require_u64(_as_dict(env.payload), "amount")
    if amount == 0:
        raise VaultError(ErrorKind.INVALID_INPUT, {"field": "amount", "got": 0})

    source = associated_token_address(admin, mint)
    have = settlement.balance_of(state, source)
    if have < amount:
        raise VaultError(ErrorKind.INSUFFICIENT_FUNDS, {"balance": have, "amount": amount})

    settlement.transfer(state, source=source, destination=reserve, amount=amount, signer=admin)
    balance = settlement.balance_of(state, reserve)
    emit_event(
        state,
        EVENT_RESERVE_DEPOSIT,
        now=now,
        admin=admin,
        reserve=reserve,
        amount=amount,
        reserve_balance=balance,
    )

    return {"applied": "VAULT_REWARD_RESERVE_DEPOSIT", "amount": amount, "reserve_balance": balance}


ADMIN_TX_TYPES: Set[str] = {
    "VAULT_INITIALIZE",
    "VAULT_CONFIGURE",
    "VAULT_SET_EMERGENCY_PAUSE",
    "VAULT_UPDATE_ADMIN",
    "VAULT_UPDATE_MAX_STAKE",
    "VAULT_SET_STAKE_MINT",
    "VAULT_REWARD_RESERVE_INIT",
    "VAULT_REWARD_RESERVE_SET",
    "VAULT_REWARD_RESERVE_DEPOSIT",
}


def apply_admin(state: Json, env: TxEnvelope, *, now: int) -> Optional[Json]:
    t = _as_str(env.tx_type).upper()
    if t not in ADMIN_TX_TYPES:
        return None

    if t == "VAULT_INITIALIZE":
        return _apply_vault_initialize(state, env, now)
    if t == "VAULT_CONFIGURE":
        return _apply_vault_configure(state, env, now)
    if t == "VAULT_SET_EMERGENCY_PAUSE":
        return _apply_vault_set_emergency_pause(state, env, now)
    if t == "VAULT_UPDATE_ADMIN":
        return _apply_vault_update_admin(state, env, now)
    if t == "VAULT_UPDATE_MAX_STAKE":
        return _apply_vault_update_max_stake(state, env, now)
    if t == "VAULT_SET_STAKE_MINT":
        return _apply_vault_set_stake_mint(state, env, now)

    if t == "VAULT_REWARD_RESERVE_INIT":
        return _apply_reward_reserve_init(state, env, now)
    if t == "VAULT_REWARD_RESERVE_SET":
        return _apply_reward_reserve_set(state, env, now)
    if t == "VAULT_REWARD_RESERVE_DEPOSIT":
        return _apply_reward_reserve_deposit(state, env, now)

    return None


__all__ = ["ADMIN_TX_TYPES", "apply_admin"]
