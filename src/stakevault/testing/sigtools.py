from __future__ import annotations

import hashlib
from typing import Any, Dict, Optional, Tuple

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from stakevault.crypto.sig import canonical_tx_message

Json = Dict[str, Any]


def _sha256(b: bytes) -> bytes:
    return hashlib.sha256(b).digest()


def deterministic_ed25519_keypair(*, label: str) -> Tuple[str, Ed25519PrivateKey]:
    """Deterministically derive an Ed25519 keypair from a stable label.

    TEST ONLY.

    Returns:
      (pubkey_hex, private_key)
    """
    seed = _sha256(("stakevault-test-ed25519:" + (label or "")).encode("utf-8"))
    sk = Ed25519PrivateKey.from_private_bytes(seed)
    pk_hex = sk.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw).hex()
    return pk_hex, sk


def pubkey_for(label: str) -> str:
    return deterministic_ed25519_keypair(label=label)[0]


def sign_tx_dict(tx: Json, *, label: Optional[str] = None) -> Json:
    """Return tx with a real Ed25519 signature (hex), deterministically derived.

    - Signing key derived from `label` if provided, else from tx['signer'].
    - Signature over canonical_tx_message(...)
    """
    if not isinstance(tx, dict):
        raise TypeError("tx must be a dict")

    tx_type = str(tx.get("tx_type") or "").strip()
    signer = str(tx.get("signer") or "").strip()
    nonce = int(tx.get("nonce") or 0)
    payload = tx.get("payload")
    if not isinstance(payload, dict):
        payload = {}

    _, sk = deterministic_ed25519_keypair(label=(label or signer))
    msg = canonical_tx_message(tx_type=tx_type, signer=signer, nonce=nonce, payload=payload)

    out = dict(tx)
    out["sig"] = sk.sign(msg).hex()
    return out


def signed_tx(tx_type: str, signer: str, nonce: int, payload: Optional[Json] = None) -> Json:
    return sign_tx_dict({"tx_type": tx_type, "signer": signer, "nonce": int(nonce), "payload": dict(payload or {})})


def register_tx(account: str) -> Json:
    """Signed ACCOUNT_REGISTER for `account` with its deterministic test key."""
    return signed_tx("ACCOUNT_REGISTER", account, 1, {"pubkey": pubkey_for(account)})


class NonceBook:
    """Tracks the next nonce per signer so tests can chain signed txs."""

    def __init__(self) -> None:
        self._next: Dict[str, int] = {}

    def register(self, account: str) -> Json:
        self._next[account] = 2
        return register_tx(account)

    def tx(self, tx_type: str, signer: str, payload: Optional[Json] = None) -> Json:
        nonce = self._next.get(signer, 1)
        self._next[signer] = nonce + 1
        return signed_tx(tx_type, signer, nonce, payload)
