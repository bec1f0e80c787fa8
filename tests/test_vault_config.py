from __future__ import annotations

import json
import os
from dataclasses import replace
from pathlib import Path

import pytest

from stakevault import env as vault_env
from stakevault.api.config import load_api_config
from stakevault.runtime.vault_config import (
    apply_vault_config_to_env,
    default_vault_config,
    load_vault_config,
    read_vault_config_file,
    validate_vault_config,
)


def _write(tmp_path: Path, obj) -> str:
    p = tmp_path / "vault.json"
    p.write_text(json.dumps(obj), encoding="utf-8")
    return str(p)


def test_default_config_is_prod_and_signed_only() -> None:
    cfg = default_vault_config()
    assert cfg.mode == "prod"
    assert cfg.allow_unsigned_txs is False
    validate_vault_config(cfg)


def test_read_config_file_fills_defaults(tmp_path: Path) -> None:
    path = _write(tmp_path, {"vault_id": "vault-a", "mode": "TESTNET", "api_port": "9001", "log_level": "debug"})
    cfg = read_vault_config_file(path)
    assert cfg.vault_id == "vault-a"
    assert cfg.mode == "testnet"
    assert cfg.api_port == 9001
    assert cfg.log_level == "DEBUG"
    assert cfg.db_path == default_vault_config().db_path


@pytest.mark.parametrize(
    "overrides",
    [
        {"mode": "staging"},
        {"api_port": 70_000},
        {"log_level": "LOUD"},
        {"allow_unsigned_txs": True},
    ],
)
def test_validation_rejects_bad_operator_config(overrides) -> None:
    with pytest.raises(ValueError):
        validate_vault_config(replace(default_vault_config(), **overrides))


def test_unsigned_txs_allowed_outside_prod() -> None:
    validate_vault_config(replace(default_vault_config(), mode="dev", allow_unsigned_txs=True))


def test_config_file_must_be_an_object(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        read_vault_config_file(_write(tmp_path, ["not", "an", "object"]))


def test_load_config_uses_env_path(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("STAKEVAULT_CONFIG_PATH", _write(tmp_path, {"vault_id": "from-env"}))
    assert load_vault_config().vault_id == "from-env"

    monkeypatch.delenv("STAKEVAULT_CONFIG_PATH")
    assert load_vault_config() == default_vault_config()


def test_apply_config_to_env(tmp_path: Path, monkeypatch) -> None:
    for k in ("VAULT_ID", "MODE", "DB_PATH", "API_HOST", "API_PORT", "LOG_LEVEL", "ALLOW_UNSIGNED_TXS"):
        monkeypatch.setenv(f"STAKEVAULT_{k}", "placeholder")

    cfg = replace(default_vault_config(), vault_id="env-vault", mode="dev", db_path=str(tmp_path / "v.db"), api_port=8181)
    apply_vault_config_to_env(cfg)

    assert os.environ["STAKEVAULT_VAULT_ID"] == "env-vault"
    assert os.environ["STAKEVAULT_MODE"] == "dev"
    assert os.environ["STAKEVAULT_DB_PATH"] == str(tmp_path / "v.db")
    assert os.environ["STAKEVAULT_API_PORT"] == "8181"
    assert os.environ["STAKEVAULT_ALLOW_UNSIGNED_TXS"] == "0"


def test_api_config_docs_follow_mode(monkeypatch) -> None:
    monkeypatch.delenv("STAKEVAULT_API_DOCS", raising=False)
    monkeypatch.setenv("STAKEVAULT_MODE", "prod")
    assert load_api_config().docs_enabled is False

    monkeypatch.setenv("STAKEVAULT_MODE", "dev")
    assert load_api_config().docs_enabled is True

    monkeypatch.setenv("STAKEVAULT_API_DOCS", "0")
    assert load_api_config().docs_enabled is False

    monkeypatch.setenv("STAKEVAULT_EVENTS_PAGE_MAX", "5000")
    assert load_api_config().events_page_max == 1000


def test_dotenv_loads_once_without_overriding(tmp_path: Path, monkeypatch) -> None:
    dotenv = tmp_path / ".env"
    dotenv.write_text("STAKEVAULT_VAULT_ID=from-dotenv\nSTAKEVAULT_API_PORT=9999\n", encoding="utf-8")
    monkeypatch.setattr(vault_env, "_LOADED", False)
    monkeypatch.setenv("STAKEVAULT_API_PORT", "8000")
    # setenv first so teardown removes the value dotenv writes
    monkeypatch.setenv("STAKEVAULT_VAULT_ID", "")
    monkeypatch.delenv("STAKEVAULT_VAULT_ID")

    assert vault_env.load_dotenv_if_present(str(dotenv)) is True
    assert os.environ["STAKEVAULT_VAULT_ID"] == "from-dotenv"
    assert os.environ["STAKEVAULT_API_PORT"] == "8000"
    assert vault_env.load_dotenv_if_present(str(dotenv)) is False
