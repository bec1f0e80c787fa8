# src/stakevault/runtime/apply/token.py
from __future__ import annotations

"""Token ledger txs.

These expose the settlement primitives to holders so balances can be created
and moved outside of the staking flow (funding wallets, paying the reserve
from an external wallet, delegated spends).
"""

from typing import Any, Dict, Optional, Set

from stakevault.ledger.addresses import associated_token_address, vault_authority_address
from stakevault.ledger.constants import TOKEN_DECIMALS
from stakevault.runtime import settlement
from stakevault.runtime.settlement import SettlementError
from stakevault.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int, float)) else ""


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


def _amount(payload: Json) -> int:
    v = payload.get("amount")
    if isinstance(v, bool) or not isinstance(v, int):
        raise SettlementError("invalid_payload", "invalid_amount", {"amount": v})
    return int(v)


def _mint(payload: Json) -> str:
    mint = _as_str(payload.get("mint"))
    if not mint:
        raise SettlementError("invalid_payload", "missing_mint", {})
    return mint


def _vault_address(state: Json) -> str:
    vault_id = _as_str(state.get("vault_id"))
    return vault_authority_address(vault_id) if vault_id else ""


def _resolve_authority(state: Json, raw: str) -> str:
    """Map the literal "vault" to this vault's authority address."""
    if raw.lower() != "vault":
        return raw
    vault_addr = _vault_address(state)
    if not vault_addr:
        raise SettlementError("precondition", "vault_id_missing", {})
    return vault_addr


def _apply_mint_create(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    mint = _mint(payload)
    decimals = payload.get("decimals", TOKEN_DECIMALS)

    authority = _resolve_authority(state, _as_str(payload.get("mint_authority")) or _as_str(env.signer))
    vault_addr = _vault_address(state)

    settlement.create_mint(
        state,
        mint=mint,
        mint_authority=authority,
        decimals=decimals,
        vault_controlled=bool(vault_addr) and authority == vault_addr,
    )
    return {"applied": "TOKEN_MINT_CREATE", "mint": mint, "mint_authority": authority}


def _apply_mint_to(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    mint = _mint(payload)
    amount = _amount(payload)
    to = _as_str(payload.get("to")) or _as_str(env.signer)

    dest = settlement.ensure_associated_account(state, owner=to, mint=mint)
    settlement.mint_to(state, mint=mint, destination=dest, amount=amount, signer=_as_str(env.signer))
    return {"applied": "TOKEN_MINT_TO", "mint": mint, "to": to, "amount": amount}


def _apply_set_mint_authority(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    mint = _mint(payload)
    new_authority = _resolve_authority(state, _as_str(payload.get("new_authority")))

    out = settlement.set_mint_authority(
        state,
        mint=mint,
        new_authority=new_authority,
        signer=_as_str(env.signer),
        vault_address=_vault_address(state),
    )
    return {"applied": "TOKEN_SET_MINT_AUTHORITY", **out}


def _apply_transfer(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    mint = _mint(payload)
    amount = _amount(payload)
    signer = _as_str(env.signer)
    owner = _as_str(payload.get("from")) or signer
    to = _as_str(payload.get("to"))
    if not to:
        raise SettlementError("invalid_payload", "missing_to", {})

    source = associated_token_address(owner, mint)
    dest = settlement.ensure_associated_account(state, owner=to, mint=mint)
    settlement.transfer(state, source=source, destination=dest, amount=amount, signer=signer)
    return {"applied": "TOKEN_TRANSFER", "mint": mint, "from": owner, "to": to, "amount": amount}


def _apply_approve(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    mint = _mint(payload)
    amount = _amount(payload)
    signer = _as_str(env.signer)
    delegate = _as_str(payload.get("delegate"))

    source = associated_token_address(signer, mint)
    settlement.approve(state, source=source, delegate=delegate, amount=amount, signer=signer)
    return {"applied": "TOKEN_APPROVE", "mint": mint, "delegate": delegate, "amount": amount}


def _apply_burn(state: Json, env: TxEnvelope) -> Json:
    payload = _as_dict(env.payload)
    mint = _mint(payload)
    amount = _amount(payload)
    signer = _as_str(env.signer)

    source = associated_token_address(signer, mint)
    settlement.burn(state, source=source, amount=amount, signer=signer)
    return {"applied": "TOKEN_BURN", "mint": mint, "amount": amount}


TOKEN_TX_TYPES: Set[str] = {
    "TOKEN_MINT_CREATE",
    "TOKEN_MINT_TO",
    "TOKEN_TRANSFER",
    "TOKEN_APPROVE",
    "TOKEN_BURN",
    "TOKEN_SET_MINT_AUTHORITY",
}


def apply_token(state: Json, env: TxEnvelope, *, now: int) -> Optional[Json]:
    t = _as_str(env.tx_type).upper()
    if t not in TOKEN_TX_TYPES:
        return None

    if t == "TOKEN_MINT_CREATE":
        return _apply_mint_create(state, env)
    if t == "TOKEN_MINT_TO":
        return _apply_mint_to(state, env)
    if t == "TOKEN_TRANSFER":
        return _apply_transfer(state, env)
    if t == "TOKEN_APPROVE":
        return _apply_approve(state, env)
    if t == "TOKEN_BURN":
        return _apply_burn(state, env)
    if t == "TOKEN_SET_MINT_AUTHORITY":
        return _apply_set_mint_authority(state, env)

    return None


__all__ = ["TOKEN_TX_TYPES", "apply_token"]
