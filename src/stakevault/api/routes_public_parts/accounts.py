from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from stakevault.api.errors import ApiError
from stakevault.api.routes_public_parts.common import _executor

router = APIRouter()

Json = Dict[str, Any]


@router.get("/accounts/{account}")
def account(account: str, request: Request) -> Json:
    ex = _executor(request)
    acct = str(account or "").strip()
    if not acct:
        raise ApiError.bad_request("invalid_payload", "missing account", {})
    view = ex.account_view(acct)
    if not view["registered"] and not view["balances"]:
        raise ApiError.not_found("account_not_found", "account is not registered", {"account": acct})
    return {"ok": True, **view}
