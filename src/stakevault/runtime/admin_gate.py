# src/stakevault/runtime/admin_gate.py
from __future__ import annotations

from typing import Any, Dict

from stakevault.runtime.errors import ErrorKind, VaultError

Json = Dict[str, Any]


def is_admin(cfg: Json, signer: str) -> bool:
    admin = str(cfg.get("admin") or "").strip()
    return bool(admin) and str(signer or "").strip() == admin


def require_admin(cfg: Json, signer: str) -> str:
    """Gate for every configuration-mutating tx.

    Must run before any state mutation so a rejected caller leaves no trace.
    """
    if not is_admin(cfg, signer):
        raise VaultError(ErrorKind.UNAUTHORIZED, {"signer": str(signer or ""), "required": "admin"})
    return str(signer).strip()


__all__ = ["is_admin", "require_admin"]
