from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from stakevault.api.errors import ApiError
from stakevault.api.routes_public_parts.common import _executor, _int_param, _str_param
from stakevault.runtime.events import EVENT_KINDS

router = APIRouter()

Json = Dict[str, Any]


@router.get("/events")
def events(request: Request, after: Optional[str] = None, limit: Optional[str] = None, kind: Optional[str] = None) -> Json:
    """Page through emitted events in seq order.

    Clients resume with after=<last seq seen>; next_after is null at the end.
    """
    ex = _executor(request)
    page_max = int(request.app.state.cfg.events_page_max)

    after_i = max(0, _int_param(after, 0))
    limit_i = max(1, min(_int_param(limit, 100), page_max))
    kind_s = _str_param(kind).strip() or None
    if kind_s is not None and kind_s not in EVENT_KINDS:
        raise ApiError.bad_request("invalid_payload", "unknown event kind", {"kind": kind_s, "allowed": list(EVENT_KINDS)})

    items = ex.list_events(after=after_i, limit=limit_i, kind=kind_s)
    next_after = int(items[-1]["seq"]) if len(items) == limit_i else None
    return {"ok": True, "events": items, "next_after": next_after}
