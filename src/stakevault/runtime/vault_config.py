# src/stakevault/runtime/vault_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class VaultConfig:
    vault_id: str
    mode: str  # "dev" | "testnet" | "prod"

    # Single SQLite DB file path for all vault persistence.
    db_path: str

    api_host: str
    api_port: int

    allow_unsigned_txs: bool

    log_level: str


_ALLOWED_MODES = {"dev", "testnet", "prod"}
_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_vault_config(cfg: VaultConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.vault_id, str) or not cfg.vault_id.strip():
        raise ValueError("vault_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {sorted(_ALLOWED_MODES)}; got: {cfg.mode!r}")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if str(cfg.log_level).strip().upper() not in _ALLOWED_LOG_LEVELS:
        raise ValueError(f"log_level must be one of {sorted(_ALLOWED_LOG_LEVELS)}; got: {cfg.log_level!r}")

    if cfg.allow_unsigned_txs and mode == "prod":
        raise ValueError("allow_unsigned_txs is not permitted in prod mode")


def default_vault_config() -> VaultConfig:
    return VaultConfig(
        vault_id="stakevault-dev",
        # No config file means production posture, never a permissive dev one.
        mode="prod",
        db_path="./data/stakevault.db",
        api_host="0.0.0.0",
        api_port=8000,
        allow_unsigned_txs=False,
        log_level="INFO",
    )


def read_vault_config_file(path: str) -> VaultConfig:
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("vault config must be a JSON object")

    d = default_vault_config()

    cfg = VaultConfig(
        vault_id=_as_str(raw.get("vault_id"), d.vault_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        allow_unsigned_txs=_as_bool(raw.get("allow_unsigned_txs"), d.allow_unsigned_txs),
        log_level=_as_str(raw.get("log_level"), d.log_level).strip().upper(),
    )

    validate_vault_config(cfg)
    return cfg


def load_vault_config(*, config_path: Optional[str] = None) -> VaultConfig:
    p = config_path or os.environ.get("STAKEVAULT_CONFIG_PATH")
    if p:
        return read_vault_config_file(p)

    cfg = default_vault_config()
    validate_vault_config(cfg)
    return cfg


def apply_vault_config_to_env(cfg: VaultConfig) -> None:
    validate_vault_config(cfg)
    os.environ["STAKEVAULT_VAULT_ID"] = cfg.vault_id
    os.environ["STAKEVAULT_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["STAKEVAULT_DB_PATH"] = cfg.db_path
    os.environ["STAKEVAULT_API_HOST"] = cfg.api_host
    os.environ["STAKEVAULT_API_PORT"] = str(int(cfg.api_port))
    os.environ["STAKEVAULT_LOG_LEVEL"] = cfg.log_level
    os.environ["STAKEVAULT_ALLOW_UNSIGNED_TXS"] = "1" if cfg.allow_unsigned_txs else "0"


__all__ = [
    "VaultConfig",
    "apply_vault_config_to_env",
    "default_vault_config",
    "load_vault_config",
    "read_vault_config_file",
    "validate_vault_config",
]
