from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import pytest

# Ensure local "src/" takes precedence over any globally-installed "stakevault" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

from stakevault.runtime import metrics  # noqa: E402
from stakevault.runtime.executor import StakeVaultExecutor  # noqa: E402
from stakevault.testing.sigtools import NonceBook  # noqa: E402

Json = Dict[str, Any]

MINT = "SVT"
T0 = 1_700_000_000


class Clock:
    """Manually advanced unix-seconds clock for executors under test."""

    def __init__(self, start: int = T0) -> None:
        self.t = int(start)

    def __call__(self) -> int:
        return self.t

    def advance(self, seconds: int) -> None:
        self.t += int(seconds)


class Vault:
    """Executor plus a nonce book, so tests read as a sequence of signed txs."""

    def __init__(self, ex: StakeVaultExecutor, clock: Clock) -> None:
        self.ex = ex
        self.clock = clock
        self.book = NonceBook()

    def register(self, *accounts: str) -> None:
        for a in accounts:
            r = self.ex.submit_tx(self.book.register(a))
            assert r["ok"] is True, r

    def submit(self, tx_type: str, signer: str, payload: Optional[Json] = None) -> Json:
        return self.ex.submit_tx(self.book.tx(tx_type, signer, payload))

    def must(self, tx_type: str, signer: str, payload: Optional[Json] = None) -> Json:
        r = self.submit(tx_type, signer, payload)
        assert r["ok"] is True, r
        return r["receipt"]

    def wallet(self, owner: str, mint: str = MINT) -> int:
        return self.ex.view().wallet_balance(owner, mint)

    def config(self) -> Json:
        return self.ex.config_summary()

    def stake(self, staker: str) -> Json:
        return self.ex.stake_summary(staker)


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def make_executor(tmp_path: Path, clock: Clock) -> Callable[..., StakeVaultExecutor]:
    def _make(*, vault_id: str = "vault-test", db_name: str = "stakevault.db") -> StakeVaultExecutor:
        return StakeVaultExecutor(db_path=str(tmp_path / db_name), vault_id=vault_id, time_provider=clock)

    return _make


@pytest.fixture
def bare_vault(make_executor, clock: Clock) -> Vault:
    """Registered admin/alice/bob with SVT balances; vault not yet initialized."""
    v = Vault(make_executor(), clock)
    v.register("admin", "alice", "bob")
    v.must("TOKEN_MINT_CREATE", "admin", {"mint": MINT})
    for who in ("admin", "alice", "bob"):
        v.must("TOKEN_MINT_TO", "admin", {"mint": MINT, "amount": 1_000_000, "to": who})
    return v


@pytest.fixture
def vault(bare_vault: Vault) -> Vault:
    """Initialized reserve-mode vault on the minutes table.

    Rate 1000 bps, staking enabled, reserve funded with 100,000.
    """
    v = bare_vault
    v.must("VAULT_INITIALIZE", "admin", {"stake_mint": MINT, "period_table": "minutes"})
    v.must("VAULT_CONFIGURE", "admin", {"enabled": True, "reward_rate": 1000})
    v.must("VAULT_REWARD_RESERVE_INIT", "admin")
    v.must("VAULT_REWARD_RESERVE_DEPOSIT", "admin", {"amount": 100_000})
    return v
