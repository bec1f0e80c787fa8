from __future__ import annotations

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse

from stakevault.runtime.metrics import format_prometheus, metrics_enabled, set_gauge, snapshot

router = APIRouter()

_VAULT_GAUGES = ("total_staked", "active_stakes", "reward_reserve_balance")


def _refresh_vault_gauges(request: Request) -> None:
    """Sample vault-level gauges from the attached executor, if any."""
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        return
    cfg = ex.config_summary()
    if not cfg.get("initialized"):
        return
    for name in _VAULT_GAUGES:
        set_gauge(f"vault_{name}", int(cfg.get(name) or 0))
    set_gauge("vault_emergency_paused", 1 if cfg.get("emergency_paused") else 0)
    set_gauge("vault_staking_enabled", 1 if cfg.get("staking_enabled") else 0)


@router.get("/metrics")
def metrics(request: Request, fmt: str = Query("prometheus", alias="format", pattern="^(prometheus|json)$")) -> Response:
    """Counters and vault gauges. Off unless STAKEVAULT_METRICS_ENABLED is set."""
    if not metrics_enabled():
        return Response(status_code=404, content="not_found\n", media_type="text/plain")
    _refresh_vault_gauges(request)
    if fmt == "json":
        return JSONResponse(snapshot())
    return Response(content=format_prometheus(), media_type="text/plain")
