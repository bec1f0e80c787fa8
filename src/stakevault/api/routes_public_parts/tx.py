from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from stakevault.api.errors import ApiError
from stakevault.api.routes_public_parts.common import _executor
from stakevault.api.schemas import TxSubmitRequest, TxSubmitResponse
from stakevault.runtime.executor import ExecutorError

router = APIRouter()

Json = Dict[str, Any]

# Admission reject code -> HTTP status.
_ADMISSION_STATUS = {
    "bad_sig": 403,
    "gate_denied": 403,
    "unknown_signer": 403,
    "bad_nonce": 409,
    "tx_too_large": 413,
    "payload_too_large": 413,
}

# Apply error category -> HTTP status.
_APPLY_STATUS = {
    "unauthorized": 403,
    "precondition": 409,
    "configuration": 409,
    "conflict": 409,
    "arithmetic": 422,
    "invalid_payload": 400,
}


def _rejection(result: Json) -> ApiError:
    code = str(result.get("error") or "rejected")
    reason = str(result.get("reason") or code)
    details: Json = {"reason": reason, "tx_id": result.get("tx_id")}
    if isinstance(result.get("details"), dict):
        details.update(result["details"])

    if result.get("stage") == "apply":
        # Apply-time failure: recorded with a receipt and the nonce consumed.
        details["recorded"] = True
        status = _APPLY_STATUS.get(code, 400)
        return ApiError(status, code, str(result.get("message") or reason), details)

    return ApiError(_ADMISSION_STATUS.get(code, 400), code, reason, details)


@router.post("/tx/submit", response_model=TxSubmitResponse)
def tx_submit(body: TxSubmitRequest, request: Request) -> Json:
    """Submit a signed tx envelope.

    Returns { ok, tx_id, tx_type, receipt, idempotent } on success. Rejections
    are returned as { ok: false, error: {code, message, details} }.
    """
    ex = _executor(request)

    if body.signer == "SYSTEM":
        raise ApiError.forbidden(
            "system_tx_forbidden",
            "SYSTEM-signed txs are not accepted via public submission endpoints",
            {"tx_type": body.tx_type},
        )

    try:
        result = ex.submit_tx(body.model_dump())
    except ExecutorError as e:
        raise ApiError.internal("persist_failed", str(e), {})

    if not result.get("ok"):
        raise _rejection(result)

    return {
        "ok": True,
        "tx_id": result["tx_id"],
        "tx_type": result.get("tx_type"),
        "idempotent": bool(result.get("idempotent", False)),
        "receipt": result.get("receipt") or {},
    }


@router.get("/tx/status/{tx_id}")
def tx_status(tx_id: str, request: Request) -> Json:
    ex = _executor(request)
    rec = ex.get_receipt(str(tx_id).strip())
    if rec is None:
        raise ApiError.not_found("tx_not_found", "no receipt for tx_id", {"tx_id": tx_id})
    return {"ok": True, "tx_id": rec["tx_id"], "applied": rec["ok"], "result": rec["result"]}
