# src/stakevault/runtime/settlement.py
from __future__ import annotations

"""In-ledger fungible token settlement.

The staking engine treats these primitives as black boxes with all-or-nothing
semantics: every function validates its complete input (accounts, mint,
authorization, balances, u64 bounds) before touching state, so a raised
SettlementError never leaves a partial transfer behind.

State layout:

  state["tokens"]["mints"][mint] = {
      "mint", "mint_authority", "decimals", "supply", "vault_controlled"
  }
  state["tokens"]["accounts"][address] = {
      "address", "owner", "mint", "amount", "delegate", "delegated_amount", "vault_owned"
  }
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from stakevault.ledger.addresses import associated_token_address
from stakevault.ledger.arith import MathOverflow, checked_add, is_u64
from stakevault.ledger.constants import TOKEN_DECIMALS
from stakevault.runtime.authority import VaultAuthority, is_vault_authority

Json = Dict[str, Any]


@dataclass
class SettlementError(Exception):
    code: str
    reason: str
    details: Optional[Json] = None

    def __str__(self) -> str:
        return f"{self.code}:{self.reason}"


def _ensure_tokens_root(state: Json) -> Json:
    root = state.get("tokens")
    if not isinstance(root, dict):
        root = {}
        state["tokens"] = root
    root.setdefault("mints", {})
    root.setdefault("accounts", {})
    return root


def _require_amount(amount: Any) -> int:
    if not is_u64(amount):
        raise SettlementError("invalid_payload", "invalid_amount", {"amount": amount})
    return int(amount)


def get_mint(state: Json, mint: str) -> Optional[Json]:
    m = _ensure_tokens_root(state)["mints"].get(str(mint))
    return m if isinstance(m, dict) else None


def get_account(state: Json, address: str) -> Optional[Json]:
    a = _ensure_tokens_root(state)["accounts"].get(str(address))
    return a if isinstance(a, dict) else None


def balance_of(state: Json, address: str) -> int:
    acct = get_account(state, address)
    if acct is None:
        return 0
    return int(acct.get("amount", 0))


def _require_mint(state: Json, mint: str) -> Json:
    m = get_mint(state, mint)
    if m is None:
        raise SettlementError("not_found", "unknown_mint", {"mint": mint})
    return m


def _require_account(state: Json, address: str) -> Json:
    acct = get_account(state, address)
    if acct is None:
        raise SettlementError("not_found", "token_account_not_found", {"address": address})
    return acct


def create_mint(
    state: Json,
    *,
    mint: str,
    mint_authority: str,
    decimals: int = TOKEN_DECIMALS,
    vault_controlled: bool = False,
) -> Json:
    mint = str(mint or "").strip()
    mint_authority = str(mint_authority or "").strip()
    if not mint or not mint_authority:
        raise SettlementError("invalid_payload", "missing_mint_fields", {"mint": mint, "mint_authority": mint_authority})
    if isinstance(decimals, bool) or not isinstance(decimals, int) or decimals < 0 or decimals > 18:
        raise SettlementError("invalid_payload", "invalid_decimals", {"decimals": decimals})

    mints = _ensure_tokens_root(state)["mints"]
    if mint in mints:
        raise SettlementError("conflict", "mint_exists", {"mint": mint})

    rec = {
        "mint": mint,
        "mint_authority": mint_authority,
        "decimals": int(decimals),
        "supply": 0,
        "vault_controlled": bool(vault_controlled),
    }
    mints[mint] = rec
    return rec


def open_account(
    state: Json,
    *,
    owner: str,
    mint: str,
    address: Optional[str] = None,
    authority: Optional[VaultAuthority] = None,
) -> Json:
    """Create a token account, or return the existing one at `address`.

    Passing `authority` marks the account vault-owned; its owner must then be
    the authority's address.
    """
    owner = str(owner or "").strip()
    if not owner:
        raise SettlementError("invalid_payload", "missing_owner", {})
    _require_mint(state, mint)

    vault_owned = authority is not None
    if vault_owned:
        if not is_vault_authority(authority) or authority.address != owner:  # type: ignore[union-attr]
            raise SettlementError("unauthorized", "vault_authority_required", {"owner": owner})

    addr = str(address or associated_token_address(owner, mint))
    accounts = _ensure_tokens_root(state)["accounts"]
    existing = accounts.get(addr)
    if isinstance(existing, dict):
        if existing.get("owner") != owner or existing.get("mint") != mint:
            raise SettlementError(
                "conflict",
                "account_exists",
                {"address": addr, "owner": existing.get("owner"), "mint": existing.get("mint")},
            )
        return existing

    rec = {
        "address": addr,
        "owner": owner,
        "mint": str(mint),
        "amount": 0,
        "delegate": "",
        "delegated_amount": 0,
        "vault_owned": bool(vault_owned),
    }
    accounts[addr] = rec
    return rec


def ensure_associated_account(state: Json, *, owner: str, mint: str) -> str:
    return str(open_account(state, owner=owner, mint=mint)["address"])


def _authorize_debit(
    acct: Json,
    amount: int,
    *,
    signer: Optional[str],
    authority: Optional[VaultAuthority],
) -> bool:
    """Return True when the debit spends a delegated allowance."""
    owner = str(acct.get("owner") or "")

    if bool(acct.get("vault_owned", False)):
        if is_vault_authority(authority) and authority.address == owner:  # type: ignore[union-attr]
            return False
        raise SettlementError("unauthorized", "vault_authority_required", {"address": acct.get("address")})

    s = str(signer or "").strip()
    if s and s == owner:
        return False

    if s and s == str(acct.get("delegate") or ""):
        allowance = int(acct.get("delegated_amount", 0))
        if allowance < amount:
            raise SettlementError(
                "precondition",
                "insufficient_allowance",
                {"address": acct.get("address"), "allowance": allowance, "amount": amount},
            )
        return True

    raise SettlementError("unauthorized", "not_account_owner", {"address": acct.get("address"), "signer": s})


def transfer(
    state: Json,
    *,
    source: str,
    destination: str,
    amount: int,
    signer: Optional[str] = None,
    authority: Optional[VaultAuthority] = None,
) -> Json:
    amt = _require_amount(amount)
    src = _require_account(state, source)
    dst = _require_account(state, destination)

    if src.get("mint") != dst.get("mint"):
        raise SettlementError(
            "precondition",
            "mint_mismatch",
            {"source_mint": src.get("mint"), "destination_mint": dst.get("mint")},
        )

    via_delegate = _authorize_debit(src, amt, signer=signer, authority=authority)

    have = int(src.get("amount", 0))
    if have < amt:
        raise SettlementError("precondition", "insufficient_funds", {"address": source, "balance": have, "amount": amt})

    if src is not dst:
        try:
            new_dst = checked_add(int(dst.get("amount", 0)), amt)
        except MathOverflow as e:
            raise SettlementError("arithmetic", "math_overflow", {"address": destination}) from e
        src["amount"] = have - amt
        dst["amount"] = new_dst

    if via_delegate:
        src["delegated_amount"] = int(src.get("delegated_amount", 0)) - amt
        if int(src["delegated_amount"]) == 0:
            src["delegate"] = ""

    return {"source": source, "destination": destination, "amount": amt}


def mint_to(
    state: Json,
    *,
    mint: str,
    destination: str,
    amount: int,
    signer: Optional[str] = None,
    authority: Optional[VaultAuthority] = None,
) -> Json:
    amt = _require_amount(amount)
    m = _require_mint(state, mint)
    dst = _require_account(state, destination)
    if dst.get("mint") != mint:
        raise SettlementError("precondition", "mint_mismatch", {"mint": mint, "destination_mint": dst.get("mint")})

    mint_authority = str(m.get("mint_authority") or "")
    if bool(m.get("vault_controlled", False)):
        if not (is_vault_authority(authority) and authority.address == mint_authority):  # type: ignore[union-attr]
            raise SettlementError("unauthorized", "vault_authority_required", {"mint": mint})
    elif not (signer and str(signer).strip() == mint_authority):
        raise SettlementError("unauthorized", "not_mint_authority", {"mint": mint, "signer": signer})

    try:
        new_supply = checked_add(int(m.get("supply", 0)), amt)
        new_balance = checked_add(int(dst.get("amount", 0)), amt)
    except MathOverflow as e:
        raise SettlementError("arithmetic", "math_overflow", {"mint": mint}) from e

    m["supply"] = new_supply
    dst["amount"] = new_balance
    return {"mint": mint, "destination": destination, "amount": amt}


def burn(
    state: Json,
    *,
    source: str,
    amount: int,
    signer: Optional[str] = None,
    authority: Optional[VaultAuthority] = None,
) -> Json:
    amt = _require_amount(amount)
    src = _require_account(state, source)
    m = _require_mint(state, str(src.get("mint") or ""))

    via_delegate = _authorize_debit(src, amt, signer=signer, authority=authority)

    have = int(src.get("amount", 0))
    if have < amt:
        raise SettlementError("precondition", "insufficient_funds", {"address": source, "balance": have, "amount": amt})

    src["amount"] = have - amt
    m["supply"] = int(m.get("supply", 0)) - amt
    if via_delegate:
        src["delegated_amount"] = int(src.get("delegated_amount", 0)) - amt
        if int(src["delegated_amount"]) == 0:
            src["delegate"] = ""

    return {"mint": src.get("mint"), "source": source, "amount": amt}


def set_mint_authority(state: Json, *, mint: str, new_authority: str, signer: str, vault_address: str = "") -> Json:
    m = _require_mint(state, mint)
    if bool(m.get("vault_controlled", False)):
        raise SettlementError("unauthorized", "vault_authority_required", {"mint": mint})
    if str(signer or "").strip() != str(m.get("mint_authority") or ""):
        raise SettlementError("unauthorized", "not_mint_authority", {"mint": mint, "signer": signer})

    new_authority = str(new_authority or "").strip()
    if not new_authority:
        raise SettlementError("invalid_payload", "missing_mint_authority", {})

    m["mint_authority"] = new_authority
    m["vault_controlled"] = bool(vault_address) and new_authority == vault_address
    return {"mint": mint, "mint_authority": new_authority, "vault_controlled": m["vault_controlled"]}


def approve(state: Json, *, source: str, delegate: str, amount: int, signer: str) -> Json:
    """Set (or with amount 0, clear) the single delegate allowed to spend from `source`."""
    amt = _require_amount(amount)
    src = _require_account(state, source)
    if bool(src.get("vault_owned", False)):
        raise SettlementError("unauthorized", "vault_account_not_delegable", {"address": source})
    if str(signer or "").strip() != str(src.get("owner") or ""):
        raise SettlementError("unauthorized", "not_account_owner", {"address": source, "signer": signer})

    delegate = str(delegate or "").strip()
    if amt > 0 and not delegate:
        raise SettlementError("invalid_payload", "missing_delegate", {})

    src["delegate"] = delegate if amt > 0 else ""
    src["delegated_amount"] = amt
    return {"source": source, "delegate": src["delegate"], "amount": amt}


__all__ = [
    "SettlementError",
    "approve",
    "balance_of",
    "burn",
    "create_mint",
    "ensure_associated_account",
    "get_account",
    "get_mint",
    "mint_to",
    "open_account",
    "set_mint_authority",
    "transfer",
]
