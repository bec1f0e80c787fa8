# src/stakevault/runtime/apply/__init__.py
"""Domain-specific apply modules.

Each module claims a disjoint set of tx types and implements the
deterministic state transitions for them. Dispatch lives in
runtime/domain_dispatch.py.

NOTE: Keep this package import-safe (no imports of domain_dispatch here).
"""

from __future__ import annotations

__all__ = [
    "accounts",
    "admin",
    "staking",
    "token",
]
