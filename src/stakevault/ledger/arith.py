# src/stakevault/ledger/arith.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from stakevault.ledger.constants import I64_MAX, U64_MAX

Json = Dict[str, Any]


@dataclass
class MathOverflow(ArithmeticError):
    code: str = "arithmetic"
    reason: str = "math_overflow"
    details: Optional[Json] = None

    def __str__(self) -> str:
        return f"{self.code}:{self.reason}"


def _u64(v: int, op: str, a: int, b: int) -> int:
    if v < 0 or v > U64_MAX:
        raise MathOverflow(details={"op": op, "lhs": int(a), "rhs": int(b)})
    return v


def checked_add(a: int, b: int) -> int:
    return _u64(int(a) + int(b), "add", a, b)


def checked_sub(a: int, b: int) -> int:
    return _u64(int(a) - int(b), "sub", a, b)


def checked_mul(a: int, b: int) -> int:
    return _u64(int(a) * int(b), "mul", a, b)


def checked_add_i64(a: int, b: int) -> int:
    v = int(a) + int(b)
    if v > I64_MAX or v < -I64_MAX - 1:
        raise MathOverflow(details={"op": "add_i64", "lhs": int(a), "rhs": int(b)})
    return v


def checked_mul_i64(a: int, b: int) -> int:
    v = int(a) * int(b)
    if v > I64_MAX or v < -I64_MAX - 1:
        raise MathOverflow(details={"op": "mul_i64", "lhs": int(a), "rhs": int(b)})
    return v


def is_u64(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool) and 0 <= v <= U64_MAX


__all__ = [
    "MathOverflow",
    "checked_add",
    "checked_sub",
    "checked_mul",
    "checked_add_i64",
    "checked_mul_i64",
    "is_u64",
]
