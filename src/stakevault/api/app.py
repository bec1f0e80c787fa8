from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from stakevault.api.config import load_api_config
from stakevault.api.errors import ApiError, api_error_handler
from stakevault.api.routes_public import public_router
from stakevault.api.security import RequestSizeLimitMiddleware
from stakevault.api.structured_logging import RequestLogMiddleware, configure_structured_logging, log_event
from stakevault.runtime.executor_boot import build_executor as _build_executor
from stakevault.runtime.vault_config import apply_vault_config_to_env, load_vault_config

log = logging.getLogger("stakevault.http")


def build_executor():
    """Build a StakeVaultExecutor for API runtime.

    This wrapper exists so tests can monkeypatch `stakevault.api.app.build_executor`
    without reaching into runtime modules.
    """
    return _build_executor()


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load vault config + attach executor
      - False: keep lightweight for unit tests / import-time validation
    """
    cfg = load_api_config()

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        ex = getattr(app.state, "executor", None)
        log_event(log, "api_started", mode=cfg.mode, executor=ex is not None)
        yield
        log_event(log, "api_stopped")

    if cfg.docs_enabled:
        app = FastAPI(title="StakeVault API", lifespan=_lifespan)
    else:
        app = FastAPI(title="StakeVault API", docs_url=None, redoc_url=None, openapi_url=None, lifespan=_lifespan)

    app.state.cfg = cfg

    # Runtime boot (expensive): vault config + executor.
    if boot_runtime:
        configure_structured_logging()
        if os.environ.get("STAKEVAULT_CONFIG_PATH"):
            apply_vault_config_to_env(load_vault_config())
        app.state.executor = build_executor()
    else:
        app.state.executor = None

    app.add_exception_handler(ApiError, api_error_handler)

    # --- Middleware ---
    # Starlette runs the last-added middleware first: size limit before logging.
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware)

    app.include_router(public_router)

    return app
