from __future__ import annotations

"""Pydantic request schemas for the public API.

The canonical tx payload rules live in the apply modules; these schemas only
check the envelope shape at the HTTP boundary.
"""

from typing import Any, Dict

from pydantic import BaseModel, Field


class TxSubmitRequest(BaseModel):
    tx_type: str = Field(..., min_length=1, description="Canonical tx type, e.g. STAKE")
    signer: str = Field(..., min_length=1, description="Signer account id")
    nonce: int = Field(..., ge=0, description="Next account nonce")
    payload: Dict[str, Any] = Field(default_factory=dict)
    sig: str = Field(default="", description="Hex or base64 ed25519 signature")

    model_config = {"extra": "forbid"}


class TxSubmitResponse(BaseModel):
    ok: bool
    tx_id: str
    tx_type: str
    idempotent: bool = False
    receipt: Dict[str, Any] = Field(default_factory=dict)
