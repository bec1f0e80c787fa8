from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional, Tuple

from stakevault.runtime.apply.accounts import is_reserved_signer
from stakevault.runtime.sigverify import verify_tx_signature
from stakevault.runtime.tx_admission_types import TxEnvelope, TxVerdict
from stakevault.tx.canon import TxIndex

Json = Dict[str, Any]


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return int(default)
    try:
        return int(str(v).strip())
    except ValueError:
        return int(default)


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return bool(default)
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}


def _is_unsafe_dev_mode() -> bool:
    """Return True only for explicitly unsafe local-dev runs.

    We require BOTH:
      - STAKEVAULT_MODE=testnet
      - STAKEVAULT_UNSAFE_DEV=1
    """
    mode = (os.getenv("STAKEVAULT_MODE") or "").strip().lower()
    if mode != "testnet":
        return False
    return _env_bool("STAKEVAULT_UNSAFE_DEV", False)


def _json_size_bytes(obj: Any) -> int:
    """Compute JSON byte size. If not serializable, return -1 (unknown)."""
    if isinstance(obj, TxEnvelope):
        obj = obj.to_json()
    try:
        return len(json.dumps(obj, separators=(",", ":"), ensure_ascii=False, sort_keys=True).encode("utf-8"))
    except (TypeError, ValueError):
        return -1


def _validate_payload_limits(payload: Any) -> Optional[TxVerdict]:
    """Generic payload validation (shape + size caps)."""
    if payload is None:
        return TxVerdict.reject("invalid_payload", "payload_required", {"expected": "object"})
    if not isinstance(payload, dict):
        return TxVerdict.reject("invalid_payload", "payload_must_be_object", {"type": type(payload).__name__})

    max_payload_bytes = _env_int("STAKEVAULT_MAX_TX_PAYLOAD_BYTES", 16 * 1024)
    max_payload_keys = _env_int("STAKEVAULT_MAX_TX_PAYLOAD_KEYS", 64)
    max_string_bytes = _env_int("STAKEVAULT_MAX_TX_STRING_BYTES", 1024)
    max_depth = _env_int("STAKEVAULT_MAX_TX_NESTING", 4)

    if len(payload) > int(max_payload_keys):
        return TxVerdict.reject(
            "invalid_payload",
            "payload_too_many_keys",
            {"keys": len(payload), "max_keys": int(max_payload_keys)},
        )

    payload_bytes = _json_size_bytes(payload)
    if payload_bytes >= 0 and payload_bytes > int(max_payload_bytes):
        return TxVerdict.reject(
            "payload_too_large",
            "payload_exceeds_size_limit",
            {"bytes": int(payload_bytes), "max_bytes": int(max_payload_bytes)},
        )

    def walk(v: Any, depth: int) -> Optional[Tuple[str, Dict[str, Any]]]:
        if depth > int(max_depth):
            return "payload_too_deep", {"max_depth": int(max_depth)}

        if v is None or isinstance(v, (bool, int, float)):
            return None

        if isinstance(v, str):
            b = len(v.encode("utf-8", errors="ignore"))
            if b > int(max_string_bytes):
                return "string_too_large", {"bytes": int(b), "max_bytes": int(max_string_bytes)}
            return None

        if isinstance(v, list):
            for it in v:
                err = walk(it, depth + 1)
                if err:
                    return err
            return None

        if isinstance(v, dict):
            for kk, vv in v.items():
                if not isinstance(kk, str):
                    return "invalid_key_type", {"key_type": type(kk).__name__}
                err = walk(vv, depth + 1)
                if err:
                    return err
            return None

        return "invalid_value_type", {"type": type(v).__name__}

    err = walk(payload, 0)
    if err:
        reason, details = err
        return TxVerdict.reject("invalid_payload", reason, details)

    return None


def admit_tx(tx: Any, state: Json, canon: TxIndex) -> TxVerdict:
    """Stateless-ish admission in front of apply.

    Checks envelope shape and size, canon membership, signer registration,
    strict nonce sequencing and the ed25519 signature. Vault rules (admin
    gate, pause, amounts, periods) are enforced at apply time so their
    rejections are recorded like any other apply failure.
    """
    max_tx_bytes = _env_int("STAKEVAULT_MAX_TX_ENVELOPE_BYTES", 32 * 1024)
    env_size = _json_size_bytes(tx)
    if env_size >= 0 and env_size > int(max_tx_bytes):
        return TxVerdict.reject(
            "tx_too_large",
            "tx_envelope_exceeds_size_limit",
            {"bytes": int(env_size), "max_bytes": int(max_tx_bytes)},
        )

    if not isinstance(tx, (dict, TxEnvelope)):
        return TxVerdict.reject("bad_shape", "tx_must_be_object", {"type": type(tx).__name__})
    if isinstance(tx, dict) and not isinstance(tx.get("payload", {}), dict):
        return TxVerdict.reject("invalid_payload", "payload_must_be_object", {"type": type(tx.get("payload")).__name__})

    try:
        env = TxEnvelope.from_json(tx)
    except (TypeError, ValueError) as e:
        return TxVerdict.reject("bad_shape", "malformed_envelope", {"error": str(e)})

    if not env.tx_type.strip():
        return TxVerdict.reject("bad_shape", "missing_tx_type", None)
    if not env.signer.strip():
        return TxVerdict.reject("bad_shape", "missing_signer", None)
    if int(env.nonce) < 0:
        return TxVerdict.reject("bad_shape", "nonce_must_be_nonnegative", {"nonce": int(env.nonce)})

    txdef = canon.get(env.tx_type.strip().upper())
    if txdef is None:
        return TxVerdict.reject("unknown_tx", "tx_type_not_in_canon", {"tx_type": env.tx_type})

    payload_verdict = _validate_payload_limits(env.payload)
    if payload_verdict is not None:
        return payload_verdict

    if is_reserved_signer(state, env.signer):
        return TxVerdict.reject("gate_denied", "reserved_signer", {"signer": env.signer})

    accounts = state.get("accounts") if isinstance(state.get("accounts"), dict) else {}
    acct = accounts.get(env.signer)
    if acct is None:
        if txdef["name"] != "ACCOUNT_REGISTER":
            return TxVerdict.reject("unknown_signer", "signer_not_found", {"signer": env.signer})
        if int(env.nonce) != 1:
            return TxVerdict.reject("bad_nonce", "register_nonce_must_be_one", {"expected": 1, "got": int(env.nonce)})
    else:
        expected = int(acct.get("nonce", 0)) + 1
        if int(env.nonce) != expected:
            return TxVerdict.reject("bad_nonce", "nonce_must_be_next", {"expected": expected, "got": int(env.nonce)})

    allow_unsigned = _env_bool("STAKEVAULT_ALLOW_UNSIGNED_TXS", False) and _is_unsafe_dev_mode()
    if not allow_unsigned and not verify_tx_signature(accounts, env.to_json()):
        return TxVerdict.reject(
            "bad_sig",
            "signature_verification_failed",
            {"signer": env.signer, "tx_type": env.tx_type},
        )

    return TxVerdict.admit()


__all__ = ["TxEnvelope", "TxVerdict", "admit_tx"]
