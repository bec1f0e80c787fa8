# src/stakevault/runtime/apply/staking.py
from __future__ import annotations

"""Holder txs: STAKE and UNSTAKE.

Lifecycle of a stake record:

    empty -> locked (STAKE) -> locked (STAKE again: merge + relock)
          -> claimed (UNSTAKE) -> locked (STAKE reuses the record)

Merge policy: staking while a lock is active always sums the new amount into
the existing principal. The old principal is first returned to the holder in
full, then old + new is pulled back into custody in one transfer, and the
window restarts at `now` with the newly chosen period. Topping up therefore
restarts the full lock for the combined balance.

Every precondition is checked before the first transfer is issued.
"""

from typing import Any, Dict, Optional, Set

from stakevault.ledger.addresses import associated_token_address
from stakevault.ledger.arith import checked_add, checked_add_i64
from stakevault.ledger.constants import PAYOUT_MINT
from stakevault.ledger.periods import PeriodError
from stakevault.ledger.rewards import payout_total, reward_for_period
from stakevault.runtime import settlement
from stakevault.runtime.errors import ErrorKind, VaultError
from stakevault.runtime.events import (
    EVENT_STAKE_ADDED,
    EVENT_STAKE_OPENED,
    EVENT_STAKE_UPDATED,
    EVENT_UNSTAKE,
    emit_event,
)
from stakevault.runtime.tx_admission_types import TxEnvelope
from stakevault.runtime.vault_store import (
    ensure_stakes,
    get_stake,
    is_active,
    period_table_for,
    require_config,
    vault_authority,
)

Json = Dict[str, Any]


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int, float)) else ""


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _require_stake_mint(cfg: Json) -> str:
    mint = _as_str(cfg.get("stake_mint"))
    if not mint or not _as_str(cfg.get("custody_account")):
        raise VaultError(ErrorKind.STAKE_MINT_NOT_CONFIGURED, {})
    return mint


def _apply_stake(state: Json, env: TxEnvelope, now: int) -> Json:
    cfg = require_config(state)
    staker = _as_str(env.signer)
    payload = _as_dict(env.payload)

    if bool(cfg.get("emergency_paused", False)):
        raise VaultError(ErrorKind.SYSTEM_PAUSED, {})
    if not bool(cfg.get("staking_enabled", False)):
        raise VaultError(ErrorKind.STAKING_NOT_ENABLED, {})

    amount = payload.get("amount")
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise VaultError(ErrorKind.INVALID_INPUT, {"field": "amount", "got": amount})
    if amount <= 0:
        raise VaultError(ErrorKind.INVALID_STAKE_AMOUNT, {"amount": amount})
    max_amount = int(cfg.get("max_stake_amount", 0))
    if amount > max_amount:
        raise VaultError(ErrorKind.STAKE_AMOUNT_TOO_LARGE, {"amount": amount, "max_stake_amount": max_amount})

    table = period_table_for(cfg)
    try:
        period = table.parse(payload.get("period"))
    except PeriodError as e:
        raise VaultError(ErrorKind.INVALID_PERIOD, e.details) from e

    mint = _require_stake_mint(cfg)
    custody = _as_str(cfg["custody_account"])
    wallet = associated_token_address(staker, mint)

    balance = settlement.balance_of(state, wallet)
    if balance < amount:
        raise VaultError(ErrorKind.INSUFFICIENT_FUNDS, {"balance": balance, "amount": amount})

    duration = table.duration_seconds(period)
    unlock_time = checked_add_i64(now, duration)

    addr, rec = get_stake(state, staker, mint)

    if rec is not None and is_active(rec):
        old_amount = int(rec["amount"])
        old_period = int(rec.get("period", 0))
        new_amount = checked_add(old_amount, amount)

        authority = vault_authority(state)
        settlement.transfer(state, source=custody, destination=wallet, amount=old_amount, authority=authority)
        settlement.transfer(state, source=wallet, destination=custody, amount=new_amount, signer=staker)

        rec["amount"] = new_amount
        rec["start_time"] = int(now)
        rec["unlock_time"] = unlock_time
        rec["period"] = period

        kind = EVENT_STAKE_ADDED if old_period == period else EVENT_STAKE_UPDATED
        emit_event(
            state,
            kind,
            now=now,
            staker=staker,
            stake_account=addr,
            added_amount=amount,
            previous_amount=old_amount,
            amount=new_amount,
            previous_period=old_period,
            period=period,
            start_time=int(now),
            unlock_time=unlock_time,
        )
        return {
            "applied": "STAKE",
            "stake_account": addr,
            "merged": True,
            "amount": new_amount,
            "period": period,
            "unlock_time": unlock_time,
        }

    settlement.transfer(state, source=wallet, destination=custody, amount=amount, signer=staker)

    ensure_stakes(state)[addr] = {
        "owner": staker,
        "mint": mint,
        "amount": int(amount),
        "start_time": int(now),
        "unlock_time": unlock_time,
        "period": period,
        "claimed": False,
    }
    emit_event(
        state,
        EVENT_STAKE_OPENED,
        now=now,
        staker=staker,
        stake_account=addr,
        amount=int(amount),
        period=period,
        start_time=int(now),
        unlock_time=unlock_time,
    )
    return {
        "applied": "STAKE",
        "stake_account": addr,
        "merged": False,
        "amount": int(amount),
        "period": period,
        "unlock_time": unlock_time,
    }


def _apply_unstake(state: Json, env: TxEnvelope, now: int) -> Json:
    cfg = require_config(state)
    staker = _as_str(env.signer)

    if bool(cfg.get("emergency_paused", False)):
        raise VaultError(ErrorKind.SYSTEM_PAUSED, {})

    mint = _require_stake_mint(cfg)
    addr, rec = get_stake(state, staker, mint)
    if rec is None:
        raise VaultError(ErrorKind.STAKE_NOT_FOUND, {"staker": staker})
    if _as_str(rec.get("owner")) != staker:
        raise VaultError(ErrorKind.UNAUTHORIZED, {"signer": staker, "required": "record_owner"})

    unlock_time = int(rec.get("unlock_time", 0))
    if now < unlock_time:
        raise VaultError(
            ErrorKind.STAKING_PERIOD_NOT_COMPLETED,
            {"now": int(now), "unlock_time": unlock_time, "remaining": unlock_time - int(now)},
        )
    if bool(rec.get("claimed", False)):
        raise VaultError(ErrorKind.REWARDS_ALREADY_CLAIMED, {"stake_account": addr})

    principal = int(rec.get("amount", 0))
    rate = int(cfg.get("staking_reward_rate", 0))
    reward = reward_for_period(principal, rate, int(rec.get("period", 0)), period_table_for(cfg))
    total = payout_total(principal, reward)

    custody = _as_str(cfg["custody_account"])
    authority = vault_authority(state)
    payout_mode = _as_str(cfg.get("payout_mode"))

    reserve = ""
    if reward > 0:
        if payout_mode == PAYOUT_MINT:
            m = settlement.get_mint(state, mint) or {}
            if m.get("mint_authority") != authority.address:
                raise VaultError(ErrorKind.MINT_AUTHORITY_MISMATCH, {"mint": mint})
        else:
            reserve = _as_str(cfg.get("reward_reserve"))
            if not reserve:
                raise VaultError(ErrorKind.REWARD_RESERVE_NOT_CONFIGURED, {})
            available = settlement.balance_of(state, reserve)
            if available < reward:
                raise VaultError(ErrorKind.INSUFFICIENT_REWARD_RESERVE, {"reserve_balance": available, "reward": reward})

    wallet = settlement.ensure_associated_account(state, owner=staker, mint=mint)
    settlement.transfer(state, source=custody, destination=wallet, amount=principal, authority=authority)

    if reward > 0:
        if payout_mode == PAYOUT_MINT:
            settlement.mint_to(state, mint=mint, destination=wallet, amount=reward, authority=authority)
        else:
            settlement.transfer(state, source=reserve, destination=wallet, amount=reward, authority=authority)

    rec["claimed"] = True

    emit_event(
        state,
        EVENT_UNSTAKE,
        now=now,
        staker=staker,
        stake_account=addr,
        original_amount=principal,
        reward_amount=reward,
        total_amount=total,
    )
    return {
        "applied": "UNSTAKE",
        "stake_account": addr,
        "original_amount": principal,
        "reward_amount": reward,
        "total_amount": total,
        "payout_mode": payout_mode,
    }


STAKING_TX_TYPES: Set[str] = {"STAKE", "UNSTAKE"}


def apply_staking(state: Json, env: TxEnvelope, *, now: int) -> Optional[Json]:
    t = _as_str(env.tx_type).upper()
    if t not in STAKING_TX_TYPES:
        return None

    if t == "STAKE":
        return _apply_stake(state, env, now)
    if t == "UNSTAKE":
        return _apply_unstake(state, env, now)

    return None


__all__ = ["STAKING_TX_TYPES", "apply_staking"]
