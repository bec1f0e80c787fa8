# src/stakevault/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from stakevault.api.routes_public_parts.accounts import router as accounts_router
from stakevault.api.routes_public_parts.events import router as events_router
from stakevault.api.routes_public_parts.health import router as health_router
from stakevault.api.routes_public_parts.metrics import router as metrics_router
from stakevault.api.routes_public_parts.tx import router as tx_router
from stakevault.api.routes_public_parts.vault import router as vault_router

public_router = APIRouter()

# Versioned API surface
public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(tx_router, prefix="/v1", tags=["tx"])
public_router.include_router(vault_router, prefix="/v1", tags=["vault"])
public_router.include_router(accounts_router, prefix="/v1", tags=["accounts"])
public_router.include_router(events_router, prefix="/v1", tags=["events"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
