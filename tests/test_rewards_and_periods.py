from __future__ import annotations

import pytest

from stakevault.ledger.addresses import derive_address, stake_record_address
from stakevault.ledger.arith import MathOverflow, checked_add, checked_add_i64, checked_sub, is_u64
from stakevault.ledger.constants import U64_MAX
from stakevault.ledger.periods import DAY_TABLE, MINUTE_TABLE, PeriodError, get_period_table
from stakevault.ledger.rewards import compute_reward, payout_total, reward_for_period
from stakevault.ledger.state import LedgerView, reward_estimate


def test_reward_formula_matches_worked_example() -> None:
    # 100,000 at 1000 bps on a 120% period: 10,000 base, 12,000 after multiplier.
    assert compute_reward(100_000, 1000, 120) == 12_000
    assert reward_for_period(100_000, 1000, 5, MINUTE_TABLE) == 12_000
    assert payout_total(100_000, 12_000) == 112_000


def test_reward_formula_for_one_million_at_bonus_period() -> None:
    # base = 1,000,000 * 1000 // 10000 = 100,000, then 100,000 * 120 // 100.
    assert compute_reward(1_000_000, 1000, 120) == 120_000
    assert reward_for_period(1_000_000, 1000, 5, MINUTE_TABLE) == 120_000
    assert MINUTE_TABLE.multiplier(5) == 120
    # Same inputs, same result, every time.
    assert {compute_reward(1_000_000, 1000, 120) for _ in range(50)} == {120_000}


def test_reward_truncates_base_before_multiplier() -> None:
    # base = 99 * 1000 // 10000 = 9, then 9 * 150 // 100 = 13 (not 14).
    assert compute_reward(99, 1000, 150) == 13


def test_reward_zero_rate_or_tiny_stake_is_zero() -> None:
    assert compute_reward(1_000_000, 0, 150) == 0
    assert compute_reward(9, 1000, 150) == 0


def test_reward_overflow_raises_instead_of_wrapping() -> None:
    with pytest.raises(MathOverflow):
        compute_reward(U64_MAX, 2, 100)
    with pytest.raises(MathOverflow):
        payout_total(U64_MAX, 1)


def test_reward_estimate_total_is_checked_even_at_zero_rate() -> None:
    view = LedgerView(config={"period_table": "minutes", "staking_reward_rate": 0})

    quote = reward_estimate(view, U64_MAX, 1)
    assert (quote["reward"], quote["total"]) == (0, U64_MAX)

    with pytest.raises(MathOverflow):
        reward_estimate(view, U64_MAX + 5, 1)


def test_checked_arithmetic_bounds() -> None:
    assert checked_add(U64_MAX - 1, 1) == U64_MAX
    with pytest.raises(MathOverflow):
        checked_add(U64_MAX, 1)
    with pytest.raises(MathOverflow):
        checked_sub(0, 1)
    with pytest.raises(MathOverflow):
        checked_add_i64(2**63 - 1, 1)

    assert is_u64(0) and is_u64(U64_MAX)
    assert not is_u64(-1)
    assert not is_u64(True)
    assert not is_u64(1.0)


def test_minute_table_durations_and_multipliers() -> None:
    assert MINUTE_TABLE.values() == [1, 2, 5, 10, 30]
    assert MINUTE_TABLE.default() == 1
    assert MINUTE_TABLE.duration_seconds(1) == 60
    assert MINUTE_TABLE.duration_seconds(30) == 1800
    assert [MINUTE_TABLE.multiplier(p) for p in MINUTE_TABLE.values()] == [105, 110, 120, 140, 150]


def test_day_table_durations_and_multipliers() -> None:
    assert DAY_TABLE.values() == [7, 14, 30, 90, 180]
    assert DAY_TABLE.duration_seconds(7) == 7 * 86_400
    assert DAY_TABLE.duration_seconds(180) == 180 * 86_400
    assert DAY_TABLE.multiplier(90) == 140


def test_period_parse_accepts_value_digits_and_name() -> None:
    assert MINUTE_TABLE.parse(5) == 5
    assert MINUTE_TABLE.parse("10") == 10
    assert MINUTE_TABLE.parse("minutes_30") == 30
    assert DAY_TABLE.parse("DAYS_14") == 14
    assert MINUTE_TABLE.label(2) == "MINUTES_2"


@pytest.mark.parametrize("raw", [3, 0, -1, True, None, "DAYS_7", 1.5, "soon"])
def test_period_parse_rejects_values_outside_table(raw) -> None:
    with pytest.raises(PeriodError) as ei:
        MINUTE_TABLE.parse(raw)
    assert ei.value.reason == "invalid_period"


def test_day_period_is_not_valid_on_minute_table() -> None:
    with pytest.raises(PeriodError):
        MINUTE_TABLE.parse(7)


def test_period_table_lookup() -> None:
    assert get_period_table("minutes") is MINUTE_TABLE
    assert get_period_table(" Days ") is DAY_TABLE
    with pytest.raises(PeriodError) as ei:
        get_period_table("weeks")
    assert ei.value.reason == "unknown_period_table"


def test_describe_lists_every_period() -> None:
    menu = DAY_TABLE.describe()
    assert [m["period"] for m in menu] == [7, 14, 30, 90, 180]
    assert menu[0] == {"period": 7, "label": "DAYS_7", "duration_seconds": 604_800, "multiplier": 105}


def test_address_derivation_is_length_prefixed_and_deterministic() -> None:
    assert derive_address("ab", "c") != derive_address("a", "bc")
    assert stake_record_address("alice", "SVT") == stake_record_address("alice", "SVT")
    assert stake_record_address("alice", "SVT") != stake_record_address("alice", "OTHER")
    assert stake_record_address("alice", "SVT") != stake_record_address("bob", "SVT")
