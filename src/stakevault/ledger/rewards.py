# src/stakevault/ledger/rewards.py
from __future__ import annotations

from stakevault.ledger.arith import checked_add, checked_mul
from stakevault.ledger.constants import BPS_DENOMINATOR, MULTIPLIER_DENOMINATOR
from stakevault.ledger.periods import PeriodTable


def compute_reward(staked_amount: int, base_rate_bps: int, multiplier: int) -> int:
    """Reward for one completed lock.

    reward = ((staked * rate_bps) // 10000) * multiplier // 100

    Every multiply is u64-checked and raises MathOverflow instead of wrapping.
    The step order fixes the rounding and must not be rearranged.
    """
    base = checked_mul(staked_amount, base_rate_bps) // BPS_DENOMINATOR
    return checked_mul(base, multiplier) // MULTIPLIER_DENOMINATOR


def reward_for_period(staked_amount: int, base_rate_bps: int, period: int, table: PeriodTable) -> int:
    return compute_reward(staked_amount, base_rate_bps, table.multiplier(period))


def payout_total(principal: int, reward: int) -> int:
    return checked_add(principal, reward)


__all__ = ["compute_reward", "payout_total", "reward_for_period"]
