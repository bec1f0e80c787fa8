# src/stakevault/runtime/sigverify.py

from __future__ import annotations

from typing import Any, Dict, List

from stakevault.crypto.sig import canonical_tx_message, verify_ed25519_signature

Json = Dict[str, Any]


def _extract_active_keys(acct: Any) -> List[str]:
    """Active pubkeys from acct["keys"] = [{"pubkey": "...", "active": bool}, ...]."""
    if not isinstance(acct, dict):
        return []
    keys = acct.get("keys")
    if not isinstance(keys, list):
        return []

    out: List[str] = []
    seen: set[str] = set()
    for rec in keys:
        if not isinstance(rec, dict) or rec.get("active", True) is False:
            continue
        pk = rec.get("pubkey")
        if isinstance(pk, str) and pk.strip() and pk.strip() not in seen:
            seen.add(pk.strip())
            out.append(pk.strip())
    return out


def verify_tx_signature(accounts: Json, tx: Json) -> bool:
    """Verify tx signature against the signer's active keys.

    ACCOUNT_REGISTER from an unknown signer is verified against the pubkey it
    registers, so a key can only be claimed by its holder.

    Fail-closed: a signer with no active keys never verifies.
    NOTE: This function is pure (no I/O).
    """
    if not isinstance(tx, dict):
        return False

    signer = tx.get("signer")
    if not isinstance(signer, str) or not signer.strip():
        return False

    sig = tx.get("sig")
    if not isinstance(sig, str) or not sig.strip():
        return False

    payload = tx.get("payload") if isinstance(tx.get("payload"), dict) else {}
    acct = accounts.get(signer) if isinstance(accounts, dict) else None

    if acct is None and str(tx.get("tx_type") or "").strip().upper() == "ACCOUNT_REGISTER":
        active_keys = _extract_active_keys({"keys": [{"pubkey": payload.get("pubkey")}]})
    else:
        active_keys = _extract_active_keys(acct)

    if not active_keys:
        return False

    msg = canonical_tx_message(
        tx_type=str(tx.get("tx_type") or ""),
        signer=signer,
        nonce=int(tx.get("nonce") or 0),
        payload=payload,
    )
    for pk in active_keys:
        if verify_ed25519_signature(message=msg, sig=sig, pubkey=pk):
            return True
    return False


__all__ = ["verify_tx_signature"]
