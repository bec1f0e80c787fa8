from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from stakevault.api import app as app_module
from stakevault.api.app import create_app
from stakevault.ledger.constants import U64_MAX
from stakevault.testing.sigtools import sign_tx_dict, signed_tx


def _client(ex=None) -> TestClient:
    app = create_app(boot_runtime=False)
    app.state.executor = ex
    return TestClient(app)


@pytest.fixture
def client(vault) -> TestClient:
    return _client(vault.ex)


def _error(r) -> dict:
    j = r.json()
    assert j.get("ok") is False
    assert isinstance(j.get("error"), dict)
    return j["error"]


def test_health_without_executor_is_not_ready() -> None:
    c = _client()
    r = c.get("/v1/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.json()["vault_id"] is None

    assert c.get("/v1/readyz").json()["ok"] is False

    r = c.get("/v1/vault/config")
    assert r.status_code == 500
    assert _error(r)["code"] == "not_ready"


def test_health_with_executor(client) -> None:
    j = client.get("/v1/health").json()
    assert j["vault_id"] == "vault-test"
    assert j["initialized"] is True
    assert len(j["tx_canon_sha256"]) == 64
    assert client.get("/v1/readyz").json()["ok"] is True


def test_boot_runtime_attaches_executor(vault, monkeypatch) -> None:
    monkeypatch.setattr(app_module, "build_executor", lambda: vault.ex)
    monkeypatch.setattr(app_module, "configure_structured_logging", lambda: None)
    monkeypatch.delenv("STAKEVAULT_CONFIG_PATH", raising=False)

    app = create_app()
    assert app.state.executor is vault.ex
    with TestClient(app) as c:
        r = c.get("/v1/health", headers={"x-request-id": "req-123"})
        assert r.status_code == 200
        assert r.headers["x-request-id"] == "req-123"


def test_submit_stake_and_query_status(vault, client) -> None:
    tx = vault.book.tx("STAKE", "alice", {"amount": 100_000, "period": 5})
    r = client.post("/v1/tx/submit", json=tx)
    assert r.status_code == 200, r.text
    j = r.json()
    assert j["ok"] is True
    assert j["tx_type"] == "STAKE"
    assert j["idempotent"] is False
    assert j["receipt"]["amount"] == 100_000

    again = client.post("/v1/tx/submit", json=tx)
    assert again.status_code == 200
    assert again.json()["idempotent"] is True

    st = client.get(f"/v1/tx/status/{j['tx_id']}").json()
    assert st["applied"] is True
    assert st["result"]["receipt"]["stake_account"] == j["receipt"]["stake_account"]

    stake = client.get("/v1/vault/stakes/alice").json()["stake"]
    assert stake["is_staking"] is True
    assert stake["estimated_reward"] == 12_000


def test_apply_rejections_map_to_http_status(vault, client) -> None:
    vault.must("STAKE", "alice", {"amount": 10, "period": 1})

    r = client.post("/v1/tx/submit", json=vault.book.tx("UNSTAKE", "alice"))
    assert r.status_code == 409
    err = _error(r)
    assert err["code"] == "precondition"
    assert err["message"] == "Staking period has not completed yet"
    assert err["details"]["reason"] == "staking_period_not_completed"
    assert err["details"]["recorded"] is True

    st = client.get(f"/v1/tx/status/{err['details']['tx_id']}").json()
    assert st["applied"] is False

    r = client.post("/v1/tx/submit", json=vault.book.tx("VAULT_CONFIGURE", "bob", {"enabled": False, "reward_rate": 0}))
    assert r.status_code == 403
    assert _error(r)["code"] == "unauthorized"

    r = client.post("/v1/tx/submit", json=vault.book.tx("STAKE", "bob", {"amount": 10, "period": 4}))
    assert r.status_code == 400
    assert _error(r)["details"]["reason"] == "invalid_period"


def test_admission_rejections_map_to_http_status(vault, client) -> None:
    forged = sign_tx_dict({"tx_type": "STAKE", "signer": "alice", "nonce": 2, "payload": {}}, label="bob")
    r = client.post("/v1/tx/submit", json=forged)
    assert r.status_code == 403
    assert _error(r)["code"] == "bad_sig"
    assert "recorded" not in _error(r)["details"]

    r = client.post("/v1/tx/submit", json=signed_tx("STAKE", "alice", 1, {}))
    assert r.status_code == 409
    assert _error(r)["code"] == "bad_nonce"

    r = client.post("/v1/tx/submit", json=signed_tx("FREE_TOKENS", "alice", 2, {}))
    assert r.status_code == 400
    assert _error(r)["code"] == "unknown_tx"

    r = client.post("/v1/tx/submit", json=signed_tx("STAKE", "SYSTEM", 1, {}))
    assert r.status_code == 403
    assert _error(r)["code"] == "system_tx_forbidden"

    r = client.post("/v1/tx/submit", json={**signed_tx("STAKE", "alice", 2, {}), "fee": 1})
    assert r.status_code == 422


def test_unknown_tx_status_is_404(client) -> None:
    r = client.get("/v1/tx/status/deadbeef")
    assert r.status_code == 404
    assert _error(r)["code"] == "tx_not_found"


def test_vault_config_and_periods(client) -> None:
    cfg = client.get("/v1/vault/config").json()["config"]
    assert cfg["initialized"] is True
    assert cfg["staking_reward_rate"] == 1000
    assert cfg["reward_reserve_balance"] == 100_000

    periods = client.get("/v1/vault/periods").json()["periods"]
    assert [p["label"] for p in periods] == ["MINUTES_1", "MINUTES_2", "MINUTES_5", "MINUTES_10", "MINUTES_30"]


def test_reward_estimate(client) -> None:
    r = client.get("/v1/vault/reward-estimate", params={"amount": 100_000, "period": 5})
    assert r.status_code == 200
    est = r.json()["estimate"]
    assert (est["reward"], est["total"], est["label"], est["multiplier"]) == (12_000, 112_000, "MINUTES_5", 120)

    r = client.get("/v1/vault/reward-estimate", params={"amount": 100_000, "period": "MINUTES_30"})
    assert r.json()["estimate"]["duration_seconds"] == 1800

    r = client.get("/v1/vault/reward-estimate", params={"amount": 100_000, "period": 3})
    assert r.status_code == 400
    assert _error(r)["code"] == "invalid_period"

    r = client.get("/v1/vault/reward-estimate", params={"amount": U64_MAX, "period": 30})
    assert r.status_code == 422
    assert _error(r)["code"] == "math_overflow"

    assert client.get("/v1/vault/reward-estimate", params={"amount": -1, "period": 5}).status_code == 422
    r = client.get("/v1/vault/reward-estimate", params={"amount": U64_MAX + 1, "period": 1})
    assert r.status_code == 422


def test_reward_estimate_needs_initialized_vault(bare_vault) -> None:
    c = _client(bare_vault.ex)
    r = c.get("/v1/vault/reward-estimate", params={"amount": 1, "period": 1})
    assert r.status_code == 409
    assert _error(r)["code"] == "not_initialized"
    assert c.get("/v1/vault/config").json()["config"] == {"initialized": False}


def test_account_view(client) -> None:
    j = client.get("/v1/accounts/alice").json()
    assert j["registered"] is True
    assert j["nonce"] == 1
    assert [b["amount"] for b in j["balances"]] == [1_000_000]

    r = client.get("/v1/accounts/nobody")
    assert r.status_code == 404
    assert _error(r)["code"] == "account_not_found"


def test_events_paging_and_filter(client) -> None:
    first = client.get("/v1/events", params={"limit": 2}).json()
    assert [e["seq"] for e in first["events"]] == [1, 2]
    assert first["next_after"] == 2

    rest = client.get("/v1/events", params={"after": first["next_after"]}).json()
    assert [e["seq"] for e in rest["events"]] == [3, 4]
    assert rest["next_after"] is None

    only = client.get("/v1/events", params={"kind": "reward_reserve_deposit"}).json()["events"]
    assert [e["kind"] for e in only] == ["reward_reserve_deposit"]

    r = client.get("/v1/events", params={"kind": "airdrop"})
    assert r.status_code == 400


def test_events_page_is_capped(vault, monkeypatch) -> None:
    monkeypatch.setenv("STAKEVAULT_EVENTS_PAGE_MAX", "1")
    c = _client(vault.ex)
    j = c.get("/v1/events", params={"limit": 50}).json()
    assert len(j["events"]) == 1
    assert j["next_after"] == 1


def test_request_size_limit_returns_413(vault, monkeypatch) -> None:
    monkeypatch.setenv("STAKEVAULT_MAX_REQUEST_BYTES", "128")
    monkeypatch.delenv("STAKEVAULT_SIZE_LIMIT_DISABLE", raising=False)
    c = _client(vault.ex)

    tx = vault.book.tx("STAKE", "alice", {"amount": 1, "period": 1, "memo": "x" * 500})
    r = c.post("/v1/tx/submit", json=tx)
    assert r.status_code == 413
    assert _error(r)["code"] == "tx_too_large"


def test_metrics_endpoint_is_opt_in(vault, client, monkeypatch) -> None:
    monkeypatch.delenv("STAKEVAULT_METRICS_ENABLED", raising=False)
    assert client.get("/v1/metrics").status_code == 404

    vault.must("STAKE", "alice", {"amount": 1, "period": 1})
    monkeypatch.setenv("STAKEVAULT_METRICS_ENABLED", "1")
    r = client.get("/v1/metrics")
    assert r.status_code == 200
    assert "stakevault_tx_applied " in r.text
    assert "stakevault_vault_total_staked 1\n" in r.text
    assert "stakevault_vault_active_stakes 1\n" in r.text
    assert "stakevault_vault_emergency_paused 0\n" in r.text

    j = client.get("/v1/metrics", params={"format": "json"}).json()
    assert j["gauges"]["vault_reward_reserve_balance"] == 100_000
    assert j["counters"]["tx_applied"] >= 1
    assert client.get("/v1/metrics", params={"format": "xml"}).status_code == 422
