from __future__ import annotations

import json
import sqlite3
from pathlib import Path

import pytest

from stakevault.runtime import metrics
from stakevault.runtime.executor import ExecutorError
from stakevault.runtime.executor_boot import ExecutorBootConfig, boot_config_from_env, build_executor
from stakevault.runtime.sqlite_db import VaultStore
from stakevault.runtime.state_invariants import check_vault_invariants


def test_restart_restores_state_receipts_and_events(vault, make_executor) -> None:
    v = vault
    r = v.submit("STAKE", "alice", {"amount": 2_500, "period": 2})
    assert r["ok"] is True
    cfg = v.config()
    stake = v.stake("alice")
    events = v.ex.list_events()

    ex2 = make_executor()
    assert ex2.config_summary() == cfg
    assert ex2.stake_summary("alice") == stake
    assert ex2.list_events() == events
    assert ex2.get_receipt(r["tx_id"])["result"]["receipt"] == r["receipt"]  # type: ignore[index]
    assert ex2.read_state()["applied_count"] == v.ex.read_state()["applied_count"]


def test_restart_refuses_a_different_vault_id(vault, make_executor) -> None:
    with pytest.raises(ExecutorError) as ei:
        make_executor(vault_id="some-other-vault")
    assert "vault_id mismatch" in str(ei.value)


def test_empty_vault_id_is_rejected(tmp_path: Path) -> None:
    from stakevault.runtime.executor import StakeVaultExecutor

    with pytest.raises(ExecutorError):
        StakeVaultExecutor(db_path=str(tmp_path / "x.db"), vault_id="  ")


def test_event_paging_in_seq_order(vault) -> None:
    v = vault
    for who in ("alice", "bob"):
        v.must("STAKE", who, {"amount": 10, "period": 1})

    all_events = v.ex.list_events()
    seqs = [e["seq"] for e in all_events]
    assert seqs == sorted(seqs) == list(range(1, len(seqs) + 1))
    assert all({"seq", "kind", "timestamp"} <= set(e) for e in all_events)

    page = v.ex.list_events(after=2, limit=2)
    assert [e["seq"] for e in page] == [3, 4]

    opened = v.ex.list_events(kind="stake_opened")
    assert [e["staker"] for e in opened] == ["alice", "bob"]
    assert all(e["timestamp"] == v.clock() for e in opened)


def test_persist_failure_leaves_state_untouched(vault, make_executor, monkeypatch) -> None:
    v = vault
    before = json.dumps(v.ex.read_state(), sort_keys=True)
    nonce = v.ex.view().get_nonce("alice")

    def _boom(self, **kwargs):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(VaultStore, "commit_tx", _boom)
    with pytest.raises(ExecutorError) as ei:
        v.submit("STAKE", "alice", {"amount": 10, "period": 1})
    assert "persist_failed" in str(ei.value)
    assert json.dumps(v.ex.read_state(), sort_keys=True) == before
    assert metrics.snapshot()["counters"]["tx_persist_failed"] == 1

    monkeypatch.undo()
    assert make_executor().view().get_nonce("alice") == nonce


def test_invariant_violation_fails_closed(vault, monkeypatch) -> None:
    v = vault

    def _violated(st):
        raise AssertionError("custody holds 0 but 10 is locked")

    monkeypatch.setattr("stakevault.runtime.executor.check_vault_invariants", _violated)
    applied = v.ex.read_state()["applied_count"]
    with pytest.raises(ExecutorError) as ei:
        v.submit("STAKE", "alice", {"amount": 10, "period": 1})
    assert "invariant_violation" in str(ei.value)
    assert v.ex.read_state()["applied_count"] == applied
    assert v.stake("alice")["is_staking"] is False


def test_check_vault_invariants_detects_unbacked_stakes(vault) -> None:
    v = vault
    v.must("STAKE", "alice", {"amount": 10, "period": 1})
    st = json.loads(json.dumps(v.ex.read_state()))
    check_vault_invariants(st)

    custody = st["config"]["custody_account"]
    st["tokens"]["accounts"][custody]["amount"] = 0
    with pytest.raises(AssertionError):
        check_vault_invariants(st)

    st = json.loads(json.dumps(v.ex.read_state()))
    st["config"]["admin"] = ""
    with pytest.raises(AssertionError):
        check_vault_invariants(st)


def test_metrics_track_outcomes(vault, monkeypatch) -> None:
    v = vault
    metrics.reset()
    v.must("STAKE", "alice", {"amount": 10, "period": 1})
    v.submit("UNSTAKE", "alice")

    snap = metrics.snapshot()
    assert snap["counters"]["tx_applied"] == 1
    assert snap["counters"]["tx_rejected_apply"] == 1
    assert snap["counters"]["events_stake_opened"] == 1
    assert snap["gauges"]["applied_count"] == v.ex.read_state()["applied_count"]

    text = metrics.format_prometheus()
    assert "stakevault_tx_applied 1\n" in text
    assert text.startswith("stakevault_uptime_ms ")

    assert metrics.metrics_enabled() is False
    monkeypatch.setenv("STAKEVAULT_METRICS_ENABLED", "1")
    assert metrics.metrics_enabled() is True


def test_build_executor_from_env(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("STAKEVAULT_DB_PATH", str(tmp_path / "boot" / "vault.db"))
    monkeypatch.setenv("STAKEVAULT_VAULT_ID", "boot-vault")

    cfg = boot_config_from_env()
    assert cfg == ExecutorBootConfig(db_path=str(tmp_path / "boot" / "vault.db"), vault_id="boot-vault")

    ex = build_executor()
    assert ex.vault_id == "boot-vault"
    assert ex.read_state()["vault_id"] == "boot-vault"
    assert (tmp_path / "boot" / "vault.db").exists()
