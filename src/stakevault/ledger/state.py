from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from stakevault.ledger.addresses import associated_token_address, stake_record_address
from stakevault.ledger.arith import MathOverflow
from stakevault.ledger.periods import PeriodError, PeriodTable, get_period_table
from stakevault.ledger.rewards import payout_total, reward_for_period

Json = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class LedgerView:
    """
    Immutable read-only view over a vault state snapshot.

    Used by the executor and the HTTP layer; nothing here mutates state.
    """

    accounts: Dict[str, Any] = field(default_factory=dict)
    config: Optional[Dict[str, Any]] = None
    stakes: Dict[str, Any] = field(default_factory=dict)
    tokens: Dict[str, Any] = field(default_factory=dict)
    vault_id: str = ""
    time: int = 0

    @classmethod
    def from_state(cls, state: Json) -> "LedgerView":
        cfg = state.get("config")
        return cls(
            accounts=copy.deepcopy(state.get("accounts") or {}),
            config=copy.deepcopy(cfg) if isinstance(cfg, dict) else None,
            stakes=copy.deepcopy(state.get("stakes") or {}),
            tokens=copy.deepcopy(state.get("tokens") or {}),
            vault_id=str(state.get("vault_id") or ""),
            time=int(state.get("time", 0) or 0),
        )

    def get_account(self, account_id: str) -> Dict[str, Any]:
        acct = self.accounts.get(account_id)
        return acct if isinstance(acct, dict) else {}

    def get_nonce(self, account_id: str) -> int:
        return int(self.get_account(account_id).get("nonce", 0) or 0)

    def balance(self, address: str) -> int:
        accts = self.tokens.get("accounts") if isinstance(self.tokens.get("accounts"), dict) else {}
        rec = accts.get(address)
        return int(rec.get("amount", 0)) if isinstance(rec, dict) else 0

    def wallet_balance(self, owner: str, mint: str) -> int:
        return self.balance(associated_token_address(owner, mint))

    def period_table(self) -> Optional[PeriodTable]:
        if self.config is None:
            return None
        return get_period_table(str(self.config.get("period_table") or ""))

    def stake_record(self, staker: str) -> Optional[Json]:
        if self.config is None or not self.config.get("stake_mint"):
            return None
        rec = self.stakes.get(stake_record_address(staker, str(self.config["stake_mint"])))
        return rec if isinstance(rec, dict) else None


def config_summary(view: LedgerView) -> Json:
    """Public configuration plus custody/reserve balances and the period menu."""
    cfg = view.config
    if cfg is None:
        return {"initialized": False}

    table = view.period_table()
    custody = str(cfg.get("custody_account") or "")
    reserve = str(cfg.get("reward_reserve") or "")
    active = sum(
        1
        for rec in view.stakes.values()
        if isinstance(rec, dict) and int(rec.get("amount", 0)) > 0 and not rec.get("claimed", False)
    )
    return {
        "initialized": True,
        "admin": cfg.get("admin"),
        "staking_enabled": bool(cfg.get("staking_enabled")),
        "staking_reward_rate": int(cfg.get("staking_reward_rate", 0)),
        "max_stake_amount": int(cfg.get("max_stake_amount", 0)),
        "emergency_paused": bool(cfg.get("emergency_paused")),
        "stake_mint": cfg.get("stake_mint") or None,
        "reward_reserve": reserve or None,
        "reward_reserve_balance": view.balance(reserve) if reserve else 0,
        "custody_account": custody or None,
        "total_staked": view.balance(custody) if custody else 0,
        "active_stakes": active,
        "payout_mode": cfg.get("payout_mode"),
        "vault_authority": cfg.get("vault_authority"),
        "period_table": table.name if table else None,
        "periods": table.describe() if table else [],
    }


def _safe_reward(amount: int, rate: int, period: int, table: PeriodTable) -> Optional[int]:
    try:
        return reward_for_period(amount, rate, period, table)
    except (MathOverflow, PeriodError):
        return None


def _empty_summary(table: Optional[PeriodTable]) -> Json:
    return {
        "is_staking": False,
        "amount": 0,
        "start_time": 0,
        "unlock_time": 0,
        "period": table.default() if table else None,
        "claimed": False,
        "can_unstake": False,
        "estimated_reward": 0,
        "time_remaining": 0,
    }


def stake_summary(view: LedgerView, staker: str, *, now: int) -> Json:
    """Holder-facing summary of the staker's record for the stake mint.

    estimated_reward uses the current rate, so it can differ from the payout
    if the admin changes the rate before unstake. None means the estimate
    overflows.
    """
    table = view.period_table()
    rec = view.stake_record(staker)
    if rec is None or table is None:
        return _empty_summary(table)

    amount = int(rec.get("amount", 0))
    claimed = bool(rec.get("claimed", False))
    unlock = int(rec.get("unlock_time", 0))
    is_staking = amount > 0 and not claimed
    rate = int((view.config or {}).get("staking_reward_rate", 0))

    return {
        "is_staking": is_staking,
        "amount": amount,
        "start_time": int(rec.get("start_time", 0)),
        "unlock_time": unlock,
        "period": int(rec.get("period", table.default())),
        "claimed": claimed,
        "can_unstake": is_staking and int(now) >= unlock,
        "estimated_reward": _safe_reward(amount, rate, int(rec.get("period", 0)), table) if is_staking else 0,
        "time_remaining": max(0, unlock - int(now)) if is_staking else 0,
    }


def reward_estimate(view: LedgerView, amount: int, period: Any) -> Json:
    """Quote the reward for a hypothetical stake at the current rate.

    Raises PeriodError for a period outside the deployment's table and
    MathOverflow when the reward or principal + reward does not fit in u64.
    """
    table = view.period_table()
    if table is None:
        return {"initialized": False}
    p = table.parse(period)
    rate = int((view.config or {}).get("staking_reward_rate", 0))
    reward = reward_for_period(int(amount), rate, p, table)
    total = payout_total(int(amount), reward)
    return {
        "initialized": True,
        "amount": int(amount),
        "period": p,
        "label": table.label(p),
        "rate_bps": rate,
        "multiplier": table.multiplier(p),
        "duration_seconds": table.duration_seconds(p),
        "reward": reward,
        "total": total,
    }


def periods_menu(view: LedgerView) -> List[Json]:
    table = view.period_table()
    return table.describe() if table else []


def account_summary(view: LedgerView, account: str) -> Json:
    """Registration, nonce and token balances for one identity."""
    acct = view.get_account(account)
    accts = view.tokens.get("accounts") if isinstance(view.tokens.get("accounts"), dict) else {}
    balances = [
        {"address": addr, "mint": rec.get("mint"), "amount": int(rec.get("amount", 0))}
        for addr, rec in sorted(accts.items())
        if isinstance(rec, dict) and rec.get("owner") == account
    ]
    return {
        "account": account,
        "registered": bool(acct),
        "nonce": view.get_nonce(account),
        "balances": balances,
    }


__all__ = [
    "LedgerView",
    "account_summary",
    "config_summary",
    "periods_menu",
    "reward_estimate",
    "stake_summary",
]
