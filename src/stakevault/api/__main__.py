# src/stakevault/api/__main__.py
from __future__ import annotations

import os

import uvicorn

from stakevault.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so STAKEVAULT_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from stakevault.api.app import create_app
    from stakevault.runtime.vault_config import apply_vault_config_to_env, load_vault_config

    if os.getenv("STAKEVAULT_CONFIG_PATH"):
        apply_vault_config_to_env(load_vault_config())

    host = os.getenv("STAKEVAULT_API_HOST", "127.0.0.1")
    port = int(os.getenv("STAKEVAULT_API_PORT", "8080"))

    uvicorn.run(create_app(), host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
