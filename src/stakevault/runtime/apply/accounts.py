# src/stakevault/runtime/apply/accounts.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from stakevault.ledger.addresses import vault_authority_address
from stakevault.ledger.constants import RESERVED_SIGNERS
from stakevault.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


@dataclass
class AccountApplyError(Exception):
    code: str
    reason: str
    details: Optional[Json] = None

    def __str__(self) -> str:
        return f"{self.code}:{self.reason}"


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int, float)) else ""


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _ensure_accounts(state: Json) -> Json:
    accts = state.get("accounts")
    if not isinstance(accts, dict):
        accts = {}
        state["accounts"] = accts
    return accts


def is_reserved_signer(state: Json, signer: str) -> bool:
    """Signer ids that would impersonate the system or the vault authority."""
    s = str(signer or "").strip()
    if s in RESERVED_SIGNERS:
        return True
    vault_id = _as_str(state.get("vault_id"))
    return bool(vault_id) and s == vault_authority_address(vault_id)


def _apply_account_register(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    signer = _as_str(env.signer)
    pubkey = _as_str(payload.get("pubkey"))
    if not signer:
        raise AccountApplyError("invalid_payload", "missing_signer", {})
    if not pubkey:
        raise AccountApplyError("invalid_payload", "missing_pubkey", {})
    if is_reserved_signer(state, signer):
        raise AccountApplyError("unauthorized", "reserved_signer", {"signer": signer})

    accts = _ensure_accounts(state)
    if signer in accts:
        raise AccountApplyError("conflict", "account_exists", {"signer": signer})

    accts[signer] = {
        "nonce": int(env.nonce),
        "keys": [{"pubkey": pubkey, "active": True}],
    }
    return {"applied": "ACCOUNT_REGISTER", "account": signer}


ACCOUNT_TX_TYPES: Set[str] = {"ACCOUNT_REGISTER"}


def apply_accounts(state: Json, env: TxEnvelope, *, now: int) -> Optional[Json]:
    t = _as_str(env.tx_type).upper()
    if t not in ACCOUNT_TX_TYPES:
        return None

    if t == "ACCOUNT_REGISTER":
        return _apply_account_register(state, env)

    return None


__all__ = ["AccountApplyError", "apply_accounts", "is_reserved_signer"]
