# src/stakevault/tx/canon.py
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, TypedDict

import yaml


class CanonError(RuntimeError):
    pass


class CanonTxType(TypedDict, total=False):
    """
    Canonical TxType entry.

    total=False so we can carry extra forward-compatible fields
    while validating required fields at load-time.
    """
    id: int
    name: str
    domain: str
    gate: str
    notes: str


_DOMAINS = {"accounts", "token", "admin", "staking"}
_GATES = {"signer", "admin"}
_CANON_PATH = Path(__file__).with_name("tx_canon.yaml")


@dataclass(frozen=True)
class TxIndex:
    """Normalized TxType index loaded from tx_canon.yaml."""

    tx_types: List[CanonTxType]
    by_name: Dict[str, CanonTxType]
    by_id: Dict[int, CanonTxType]
    meta: Dict[str, Any]
    source_sha256: str

    def get(self, name: str) -> Optional[CanonTxType]:
        return self.by_name.get(name)

    def get_by_id(self, tx_id: int) -> Optional[CanonTxType]:
        return self.by_id.get(int(tx_id))

    def names(self) -> List[str]:
        return [tx["name"] for tx in self.tx_types]

    def is_admin_gated(self, name: str) -> bool:
        tx = self.by_name.get(name)
        return bool(tx) and tx.get("gate") == "admin"


def _validate_entry(tx: Any) -> None:
    if not isinstance(tx, dict):
        raise CanonError(f"tx entry must be a mapping, got {type(tx).__name__}")
    name = tx.get("name")
    if not isinstance(name, str) or not name.strip():
        raise CanonError(f"tx entry missing name: {tx!r}")
    if not isinstance(tx.get("id"), int) or isinstance(tx.get("id"), bool):
        raise CanonError(f"tx {name}: id must be int")
    if tx.get("domain") not in _DOMAINS:
        raise CanonError(f"tx {name}: unknown domain {tx.get('domain')!r}")
    gate = tx.setdefault("gate", "signer")
    if gate not in _GATES:
        raise CanonError(f"tx {name}: unknown gate {gate!r}")


def parse_tx_canon(raw: bytes) -> TxIndex:
    try:
        obj = yaml.safe_load(raw.decode("utf-8"))
    except yaml.YAMLError as e:
        raise CanonError(f"failed to parse tx_canon.yaml: {e}") from e

    if not isinstance(obj, dict) or not isinstance(obj.get("tx_types"), list):
        raise CanonError("tx_canon.yaml must be a mapping with a tx_types list")

    tx_list: List[CanonTxType] = []
    by_name: Dict[str, CanonTxType] = {}
    by_id: Dict[int, CanonTxType] = {}

    for it in obj["tx_types"]:
        _validate_entry(it)
        tx: CanonTxType = dict(it)  # type: ignore[assignment]
        tx["name"] = tx["name"].strip().upper()

        if tx["name"] in by_name:
            raise CanonError(f"duplicate tx name in canon: {tx['name']}")
        if tx["id"] in by_id:
            raise CanonError(f"duplicate tx id in canon: {tx['id']}")

        tx_list.append(tx)
        by_name[tx["name"]] = tx
        by_id[tx["id"]] = tx

    meta = {k: v for k, v in obj.items() if k != "tx_types"}
    return TxIndex(
        tx_types=tx_list,
        by_name=by_name,
        by_id=by_id,
        meta=meta,
        source_sha256=hashlib.sha256(raw).hexdigest(),
    )


@lru_cache(maxsize=1)
def load_tx_index() -> TxIndex:
    """Load the packaged tx canon (cached for the process lifetime)."""
    raw = _CANON_PATH.read_bytes()
    return parse_tx_canon(raw)


__all__ = ["CanonError", "CanonTxType", "TxIndex", "load_tx_index", "parse_tx_canon"]
