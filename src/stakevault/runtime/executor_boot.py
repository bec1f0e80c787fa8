# src/stakevault/runtime/executor_boot.py

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from stakevault.runtime.executor import StakeVaultExecutor


@dataclass
class ExecutorBootConfig:
    db_path: str
    vault_id: str


def boot_config_from_env() -> ExecutorBootConfig:
    return ExecutorBootConfig(
        db_path=os.environ.get("STAKEVAULT_DB_PATH", "./data/stakevault.db"),
        vault_id=os.environ.get("STAKEVAULT_VAULT_ID", "stakevault-dev"),
    )


def build_executor(cfg: Optional[ExecutorBootConfig] = None) -> StakeVaultExecutor:
    """
    Build a StakeVaultExecutor from an explicit boot config or, if omitted,
    from environment variables.
    """
    c = cfg or boot_config_from_env()
    return StakeVaultExecutor(db_path=c.db_path, vault_id=c.vault_id)
