# src/stakevault/ledger/constants.py
from __future__ import annotations

"""Vault monetary and arithmetic constants.

- Reward rate is expressed in basis points (10000 = 100%)
- Period multipliers are percent-of-principal (105 = principal +5%)
- Amounts live in the unsigned 64-bit domain, timestamps in the signed one
"""

# Token precision (1 token = 1e-9 units)
TOKEN_DECIMALS: int = 9
TOKEN: int = 10**TOKEN_DECIMALS

BPS_DENOMINATOR: int = 10_000
MULTIPLIER_DENOMINATOR: int = 100

U64_MAX: int = 2**64 - 1
I64_MAX: int = 2**63 - 1

# Per-call stake cap until the admin changes it: 1,000,000 tokens
DEFAULT_MAX_STAKE_AMOUNT: int = 1_000_000 * TOKEN

DEFAULT_PERIOD_TABLE: str = "minutes"

PAYOUT_RESERVE: str = "reserve"
PAYOUT_MINT: str = "mint"
PAYOUT_MODES = (PAYOUT_RESERVE, PAYOUT_MINT)

# Address derivation seeds
SEED_STAKE_RECORD: str = "stake_account"
SEED_VAULT_AUTHORITY: str = "stake_authority"
SEED_TOKEN_ACCOUNT: str = "token_account"
SEED_CUSTODY: str = "stake_custody"
SEED_REWARD_RESERVE: str = "reward_reserve"

# Signer ids that can never be registered as user accounts
RESERVED_SIGNERS = ("SYSTEM",)
