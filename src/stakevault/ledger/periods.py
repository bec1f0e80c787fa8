# src/stakevault/ledger/periods.py
from __future__ import annotations

"""Staking period tables.

A deployment picks exactly one table when the vault is initialized and keeps
it for its whole life. Periods are identified by their integer value in the
table's unit (minutes or days); each maps to a duration and a bonus
multiplier in percent-of-principal terms.

    minutes: 1, 2, 5, 10, 30      -> 105, 110, 120, 140, 150
    days:    7, 14, 30, 90, 180   -> 105, 110, 120, 140, 150
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, List, Mapping, Optional, Type

from stakevault.ledger.arith import checked_mul_i64

Json = Dict[str, Any]


@dataclass
class PeriodError(ValueError):
    code: str
    reason: str
    details: Optional[Json] = None

    def __str__(self) -> str:
        return f"{self.code}:{self.reason}"


class MinutePeriod(IntEnum):
    MINUTES_1 = 1
    MINUTES_2 = 2
    MINUTES_5 = 5
    MINUTES_10 = 10
    MINUTES_30 = 30


class DayPeriod(IntEnum):
    DAYS_7 = 7
    DAYS_14 = 14
    DAYS_30 = 30
    DAYS_90 = 90
    DAYS_180 = 180


@dataclass(frozen=True)
class PeriodTable:
    name: str
    unit_seconds: int
    periods: Type[IntEnum]
    multipliers: Mapping[int, int]

    def values(self) -> List[int]:
        return [int(p) for p in self.periods]

    def default(self) -> int:
        return self.values()[0]

    def parse(self, raw: Any) -> int:
        """Resolve a period from its integer value or its enum name."""
        if isinstance(raw, bool):
            raise PeriodError("invalid_payload", "invalid_period", {"period": raw, "table": self.name})

        if isinstance(raw, int):
            if raw in self.multipliers:
                return int(raw)
            raise PeriodError(
                "invalid_payload",
                "invalid_period",
                {"period": raw, "table": self.name, "allowed": self.values()},
            )

        if isinstance(raw, str):
            s = raw.strip()
            if s.lstrip("-").isdigit():
                return self.parse(int(s))
            member = self.periods.__members__.get(s.upper())
            if member is not None:
                return int(member)

        raise PeriodError(
            "invalid_payload",
            "invalid_period",
            {"period": raw, "table": self.name, "allowed": self.values()},
        )

    def label(self, period: int) -> str:
        return self.periods(int(period)).name

    def duration_seconds(self, period: int) -> int:
        p = self.parse(period)
        return checked_mul_i64(p, self.unit_seconds)

    def multiplier(self, period: int) -> int:
        return int(self.multipliers[self.parse(period)])

    def describe(self) -> List[Json]:
        return [
            {
                "period": int(p),
                "label": p.name,
                "duration_seconds": self.duration_seconds(int(p)),
                "multiplier": int(self.multipliers[int(p)]),
            }
            for p in self.periods
        ]


MINUTE_TABLE = PeriodTable(
    name="minutes",
    unit_seconds=60,
    periods=MinutePeriod,
    multipliers={1: 105, 2: 110, 5: 120, 10: 140, 30: 150},
)

DAY_TABLE = PeriodTable(
    name="days",
    unit_seconds=86_400,
    periods=DayPeriod,
    multipliers={7: 105, 14: 110, 30: 120, 90: 140, 180: 150},
)

_TABLES: Dict[str, PeriodTable] = {t.name: t for t in (MINUTE_TABLE, DAY_TABLE)}


def period_table_names() -> List[str]:
    return sorted(_TABLES.keys())


def get_period_table(name: str) -> PeriodTable:
    t = _TABLES.get(str(name or "").strip().lower())
    if t is None:
        raise PeriodError("invalid_payload", "unknown_period_table", {"table": name, "allowed": period_table_names()})
    return t


__all__ = [
    "DAY_TABLE",
    "DayPeriod",
    "MINUTE_TABLE",
    "MinutePeriod",
    "PeriodError",
    "PeriodTable",
    "get_period_table",
    "period_table_names",
]
