# src/stakevault/runtime/events.py
from __future__ import annotations

"""Vault notification events.

Appliers append events to state["event_outbox"] while they run. Because
apply is atomic (it runs on a deep copy), a failed apply leaves no events
behind. The executor drains the outbox after a successful apply and persists
the drained events in the same write transaction as the ledger snapshot.
"""

from typing import Any, Dict, List

Json = Dict[str, Any]

EVENT_CONFIG_UPDATE = "config_update"
EVENT_EMERGENCY_PAUSE = "emergency_pause"
EVENT_STAKE_OPENED = "stake_opened"
EVENT_STAKE_ADDED = "stake_added"
EVENT_STAKE_UPDATED = "stake_updated"
EVENT_UNSTAKE = "unstake"
EVENT_RESERVE_DEPOSIT = "reward_reserve_deposit"

EVENT_KINDS = (
    EVENT_CONFIG_UPDATE,
    EVENT_EMERGENCY_PAUSE,
    EVENT_STAKE_OPENED,
    EVENT_STAKE_ADDED,
    EVENT_STAKE_UPDATED,
    EVENT_UNSTAKE,
    EVENT_RESERVE_DEPOSIT,
)


def _ensure_outbox(state: Json) -> List[Json]:
    out = state.get("event_outbox")
    if not isinstance(out, list):
        out = []
        state["event_outbox"] = out
    return out


def emit_event(state: Json, kind: str, *, now: int, **fields: Any) -> Json:
    if kind not in EVENT_KINDS:
        raise ValueError(f"unknown event kind: {kind!r}")

    seq = int(state.get("event_seq", 0)) + 1
    state["event_seq"] = seq

    ev: Json = {"seq": seq, "kind": kind, "timestamp": int(now)}
    ev.update(fields)
    _ensure_outbox(state).append(ev)
    return ev


def emit_config_update(state: Json, *, admin: str, field: str, old_value: Any, new_value: Any, now: int) -> Json:
    """Config changes carry old and new values as text."""
    return emit_event(
        state,
        EVENT_CONFIG_UPDATE,
        now=now,
        admin=str(admin),
        field=str(field),
        old_value=_as_text(old_value),
        new_value=_as_text(new_value),
    )


def _as_text(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


def drain_events(state: Json) -> List[Json]:
    out = _ensure_outbox(state)
    drained = list(out)
    out.clear()
    return drained


__all__ = [
    "EVENT_KINDS",
    "drain_events",
    "emit_config_update",
    "emit_event",
]
