# src/stakevault/runtime/state_invariants.py
from __future__ import annotations

"""State invariants / normalization helpers.

Vault state is a nested JSON-like dict mutated deterministically by the
apply_* modules. ensure_state() is the single place that checks the state is
dict-like and creates the containers every domain relies on. Domain-specific
roots ("config", "stakes", "tokens") stay the responsibility of their apply
module.
"""

from collections.abc import MutableMapping
from typing import Any, Dict

Json = Dict[str, Any]


def _require_dict(st: Any, key: str) -> None:
    v = st.get(key)
    if v is None:
        st[key] = {}
    elif not isinstance(v, dict):
        raise TypeError(f"state[{key!r}] must be dict, got {type(v)}")


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict and contains core keys.

    Raises:
        TypeError: if st is not a MutableMapping or a core container has the wrong type
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    _require_dict(st, "accounts")
    _require_dict(st, "params")

    outbox = st.get("event_outbox")
    if outbox is None:
        st["event_outbox"] = []
    elif not isinstance(outbox, list):
        raise TypeError(f"state['event_outbox'] must be list, got {type(outbox)}")

    st.setdefault("event_seq", 0)
    return st  # type: ignore[return-value]


def check_vault_invariants(st: Json) -> None:
    """Post-apply consistency checks; raise AssertionError on violation.

    - admin is never empty once the vault is initialized
    - every stake record has unlock_time >= start_time
    - an unclaimed record with a positive amount is backed by custody
    """
    cfg = st.get("config")
    if isinstance(cfg, dict):
        if not str(cfg.get("admin") or "").strip():
            raise AssertionError("config.admin is empty")

    stakes = st.get("stakes")
    if not isinstance(stakes, dict):
        return

    locked = 0
    for addr, rec in stakes.items():
        if not isinstance(rec, dict):
            raise AssertionError(f"stake record {addr} is not an object")
        if int(rec.get("unlock_time", 0)) < int(rec.get("start_time", 0)):
            raise AssertionError(f"stake record {addr} unlocks before it starts")
        if not bool(rec.get("claimed", False)):
            locked += int(rec.get("amount", 0))

    if isinstance(cfg, dict) and cfg.get("custody_account"):
        accounts = (st.get("tokens") or {}).get("accounts") or {}
        custody = accounts.get(cfg["custody_account"]) or {}
        if int(custody.get("amount", 0)) < locked:
            raise AssertionError(f"custody holds {custody.get('amount', 0)} but {locked} is locked")


__all__ = ["check_vault_invariants", "ensure_state"]
