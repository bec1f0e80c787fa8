from __future__ import annotations

import time
from typing import Any, Optional

from fastapi import APIRouter, Request

router = APIRouter()


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_sha(ex: Any) -> Optional[str]:
    idx = getattr(ex, "tx_index", None)
    sha = getattr(idx, "source_sha256", None)
    return sha if isinstance(sha, str) and sha else None


def _health_payload(request: Request) -> dict[str, object]:
    # health must never crash; missing executor just reports nulls
    ex = getattr(request.app.state, "executor", None)
    read_state = getattr(ex, "read_state", None)
    st = read_state() if callable(read_state) else None

    vault_id = None
    applied = None
    initialized = None
    if isinstance(st, dict):
        vault_id = str(st.get("vault_id") or "") or None
        applied = int(st.get("applied_count", 0) or 0)
        initialized = isinstance(st.get("config"), dict)

    return {
        "ok": True,
        "service": "stakevault",
        "version": "v1",
        "ts_ms": _now_ms(),
        "vault_id": vault_id,
        "applied_count": applied,
        "initialized": initialized,
        "tx_canon_sha256": _canon_sha(ex),
    }


@router.get("/health")
def health(request: Request) -> dict[str, object]:
    return _health_payload(request)


@router.get("/readyz")
def readyz(request: Request) -> dict[str, object]:
    """Ready only once an executor with a loaded tx canon is attached."""
    out = _health_payload(request)
    out["ok"] = bool(out["vault_id"]) and bool(out["tx_canon_sha256"])
    return out
