from __future__ import annotations

import copy
import logging
import sqlite3
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from stakevault.ledger.state import (
    LedgerView,
    account_summary,
    config_summary,
    periods_menu,
    reward_estimate,
    stake_summary,
)
from stakevault.runtime.domain_apply import ApplyError, apply_tx_atomic
from stakevault.runtime.errors import error_message
from stakevault.runtime.events import drain_events
from stakevault.runtime.metrics import inc_counter, set_gauge
from stakevault.runtime.sqlite_db import SqliteDB, VaultStore
from stakevault.runtime.state_invariants import check_vault_invariants, ensure_state
from stakevault.runtime.tx_admission import admit_tx
from stakevault.runtime.tx_admission_types import TxEnvelope
from stakevault.runtime.tx_id import compute_tx_id_from_envelope
from stakevault.runtime.vault_config import load_vault_config
from stakevault.runtime.vault_logging import log_event
from stakevault.tx.canon import TxIndex, load_tx_index

Json = Dict[str, Any]

log = logging.getLogger("stakevault.executor")
event_log = logging.getLogger("stakevault.events")


def _now_ms() -> int:
    return int(time.time() * 1000)


class ExecutorError(RuntimeError):
    pass


class StakeVaultExecutor:
    """Single-writer vault executor using SQLite for persistence.

    Every submitted tx is admitted, applied atomically against a working copy
    of the state and persisted (snapshot, receipt, events) in one write
    transaction. The in-memory state only advances after the write commits.
    """

    def __init__(
        self,
        *,
        db_path: str,
        vault_id: str,
        time_provider: Optional[Callable[[], int]] = None,
    ) -> None:
        self.vault_id = str(vault_id or "").strip()
        if not self.vault_id:
            raise ExecutorError("vault_id must be non-empty")

        self.db_path = str(db_path)
        self._time_provider = time_provider or (lambda: int(time.time()))
        self._lock = threading.RLock()

        self._db = SqliteDB(path=self.db_path)
        self._store = VaultStore(db=self._db)

        if self._store.exists():
            self.state = self._store.read_state()
        else:
            self.state = self._initial_state()
            self._store.write_state(self.state)

        # Fail-closed on vault_id mismatch once state is present.
        st_vault_id = str(self.state.get("vault_id") or "").strip()
        if st_vault_id != self.vault_id:
            raise ExecutorError(
                f"vault_id mismatch: db={st_vault_id!r} executor={self.vault_id!r}. Refuse to start."
            )

        ensure_state(self.state)
        self.tx_index: TxIndex = load_tx_index()

        log_event(
            log,
            "executor_started",
            vault_id=self.vault_id,
            db_path=self.db_path,
            applied_count=int(self.state.get("applied_count", 0)),
            canon_sha256=self.tx_index.source_sha256,
        )

    def _initial_state(self) -> Json:
        return {
            "vault_id": self.vault_id,
            "accounts": {},
            "params": {},
            "event_outbox": [],
            "event_seq": 0,
            "applied_count": 0,
            "time": 0,
            "created_ms": _now_ms(),
        }

    # ----------------------------
    # Public accessors
    # ----------------------------

    def now(self) -> int:
        return int(self._time_provider())

    def read_state(self) -> Json:
        return self.state

    def view(self) -> LedgerView:
        with self._lock:
            return LedgerView.from_state(self.state)

    # ----------------------------
    # Tx submission
    # ----------------------------

    def submit_tx(self, env: Json) -> Json:
        """Admit, apply and persist one tx envelope.

        Resubmitting an envelope whose tx_id already has a receipt returns
        the stored result without touching state.
        """
        if not isinstance(env, dict):
            return {"ok": False, "stage": "admission", "error": "bad_shape", "reason": "tx_must_be_object", "details": None}

        try:
            tx_env = TxEnvelope.from_json(env)
        except (TypeError, ValueError) as e:
            return {
                "ok": False,
                "stage": "admission",
                "error": "bad_shape",
                "reason": "malformed_envelope",
                "details": {"error": str(e)},
            }

        tx_id = compute_tx_id_from_envelope(self.vault_id, tx_env)

        with self._lock:
            prior = self._store.get_receipt(tx_id)
            if prior is not None:
                inc_counter("tx_duplicate")
                out = dict(prior["result"])
                out["idempotent"] = True
                return out

            verdict = admit_tx(env, self.state, self.tx_index)
            if not verdict.ok:
                inc_counter("tx_rejected_admission")
                log_event(
                    log,
                    "tx_rejected",
                    stage="admission",
                    tx_id=tx_id,
                    tx_type=tx_env.tx_type,
                    signer=tx_env.signer,
                    code=verdict.code,
                    reason=verdict.reason,
                )
                return {
                    "ok": False,
                    "stage": "admission",
                    "tx_id": tx_id,
                    "error": verdict.code,
                    "reason": verdict.reason,
                    "details": verdict.details,
                }

            now = self.now()
            working = copy.deepcopy(self.state)

            result: Json
            try:
                receipt = apply_tx_atomic(working, tx_env, now=now, tx_index=self.tx_index)
                check_vault_invariants(working)
                working["applied_count"] = int(working.get("applied_count", 0)) + 1
                result = {
                    "ok": True,
                    "stage": "apply",
                    "tx_id": tx_id,
                    "tx_type": tx_env.tx_type,
                    "now": now,
                    "receipt": receipt,
                }
            except ApplyError as e:
                result = {
                    "ok": False,
                    "stage": "apply",
                    "tx_id": tx_id,
                    "tx_type": tx_env.tx_type,
                    "now": now,
                    "error": e.code,
                    "reason": e.reason,
                    "message": error_message(e.reason),
                    "details": e.details,
                }
            except AssertionError as e:
                inc_counter("tx_invariant_violation")
                log_event(log, "tx_invariant_violation", tx_id=tx_id, tx_type=tx_env.tx_type, error=str(e))
                raise ExecutorError(f"invariant_violation: {e}") from e

            events = drain_events(working)

            try:
                self._store.commit_tx(
                    st=working,
                    tx_id=tx_id,
                    env=tx_env.to_json(),
                    ok=bool(result["ok"]),
                    result=result,
                    events=events,
                )
            except (sqlite3.Error, TypeError, ValueError) as e:
                inc_counter("tx_persist_failed")
                log_event(log, "tx_persist_failed", tx_id=tx_id, tx_type=tx_env.tx_type, error=str(e))
                raise ExecutorError(f"persist_failed: {e}") from e

            self.state = working

        self._record_outcome(result, events)
        return result

    def _record_outcome(self, result: Json, events: List[Json]) -> None:
        if result["ok"]:
            inc_counter("tx_applied")
        else:
            inc_counter("tx_rejected_apply")
        set_gauge("applied_count", int(self.state.get("applied_count", 0)))
        set_gauge("event_seq", int(self.state.get("event_seq", 0)))

        log_event(
            log,
            "tx_applied" if result["ok"] else "tx_rejected",
            stage="apply",
            tx_id=result["tx_id"],
            tx_type=result.get("tx_type"),
            reason=result.get("reason"),
            events=len(events),
        )
        for ev in events:
            inc_counter(f"events_{ev['kind']}")
            log_event(event_log, "vault_event", **ev)

    # ----------------------------
    # Read views
    # ----------------------------

    def config_summary(self) -> Json:
        return config_summary(self.view())

    def periods(self) -> List[Json]:
        return periods_menu(self.view())

    def stake_summary(self, staker: str) -> Json:
        return stake_summary(self.view(), str(staker), now=self.now())

    def reward_estimate(self, amount: int, period: Any) -> Json:
        return reward_estimate(self.view(), amount, period)

    def account_view(self, account: str) -> Json:
        return account_summary(self.view(), str(account))

    def list_events(self, *, after: int = 0, limit: int = 100, kind: Optional[str] = None) -> List[Json]:
        return self._store.list_events(after=after, limit=limit, kind=kind)

    def get_receipt(self, tx_id: str) -> Optional[Json]:
        return self._store.get_receipt(tx_id)

    @classmethod
    def from_env(cls) -> "StakeVaultExecutor":
        cfg = load_vault_config()
        return cls(db_path=cfg.db_path, vault_id=cfg.vault_id)


__all__ = ["ExecutorError", "StakeVaultExecutor"]
