import os
from dataclasses import dataclass


def _is_truthy(v: str | None) -> bool:
    if v is None:
        return False
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class ApiConfig:
    mode: str  # "dev" | "testnet" | "prod"
    docs_enabled: bool
    events_page_max: int


def load_api_config() -> ApiConfig:
    mode = os.getenv("STAKEVAULT_MODE", "prod").strip().lower()

    # Docs stay off in prod unless explicitly requested.
    raw_docs = os.getenv("STAKEVAULT_API_DOCS")
    docs_enabled = _is_truthy(raw_docs) if raw_docs is not None else mode != "prod"

    try:
        page_max = int(os.getenv("STAKEVAULT_EVENTS_PAGE_MAX", "500"))
    except ValueError:
        page_max = 500

    return ApiConfig(mode=mode, docs_enabled=docs_enabled, events_page_max=max(1, min(page_max, 1000)))
