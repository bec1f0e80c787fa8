from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Query, Request

from stakevault.api.errors import ApiError
from stakevault.api.routes_public_parts.common import _executor
from stakevault.ledger.arith import MathOverflow
from stakevault.ledger.constants import U64_MAX
from stakevault.ledger.periods import PeriodError

router = APIRouter()

Json = Dict[str, Any]


@router.get("/vault/config")
def vault_config(request: Request) -> Json:
    ex = _executor(request)
    return {"ok": True, "config": ex.config_summary()}


@router.get("/vault/stakes/{staker}")
def vault_stake(staker: str, request: Request) -> Json:
    ex = _executor(request)
    s = str(staker or "").strip()
    if not s:
        raise ApiError.bad_request("invalid_payload", "missing staker", {})
    return {"ok": True, "staker": s, "stake": ex.stake_summary(s)}


@router.get("/vault/reward-estimate")
def vault_reward_estimate(
    request: Request,
    amount: int = Query(..., ge=0, le=U64_MAX),
    period: str = Query(...),
) -> Json:
    """Quote reward and total for a hypothetical stake at the current rate."""
    ex = _executor(request)
    try:
        quote = ex.reward_estimate(amount, period)
    except PeriodError as e:
        raise ApiError.bad_request(e.reason, "period is not offered by this vault", e.details or {})
    except MathOverflow as e:
        raise ApiError.unprocessable(e.reason, "reward does not fit in u64", e.details or {})
    if not quote.get("initialized"):
        raise ApiError.conflict("not_initialized", "vault is not initialized", {})
    return {"ok": True, "estimate": quote}


@router.get("/vault/periods")
def vault_periods(request: Request) -> Json:
    ex = _executor(request)
    return {"ok": True, "periods": ex.periods()}
