from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

Json = Dict[str, Any]


@dataclass
class ApplyError(Exception):
    """Canonical error type for domain apply and dispatch failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class ErrorCategory(str, Enum):
    UNAUTHORIZED = "unauthorized"
    PRECONDITION = "precondition"
    ARITHMETIC = "arithmetic"
    CONFIGURATION = "configuration"
    INVALID_PAYLOAD = "invalid_payload"


class ErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"

    SYSTEM_PAUSED = "system_paused"
    STAKING_NOT_ENABLED = "staking_not_enabled"
    INVALID_STAKE_AMOUNT = "invalid_stake_amount"
    STAKE_AMOUNT_TOO_LARGE = "stake_amount_too_large"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    STAKING_PERIOD_NOT_COMPLETED = "staking_period_not_completed"
    REWARDS_ALREADY_CLAIMED = "rewards_already_claimed"
    INSUFFICIENT_REWARD_RESERVE = "insufficient_reward_reserve"
    STAKE_NOT_FOUND = "stake_not_found"
    ALREADY_INITIALIZED = "already_initialized"
    ACTIVE_STAKES_EXIST = "active_stakes_exist"

    MATH_OVERFLOW = "math_overflow"

    NOT_INITIALIZED = "not_initialized"
    STAKE_MINT_NOT_CONFIGURED = "stake_mint_not_configured"
    REWARD_RESERVE_NOT_CONFIGURED = "reward_reserve_not_configured"
    INVALID_REWARD_RESERVE = "invalid_reward_reserve"
    PAYOUT_MODE_MISMATCH = "payout_mode_mismatch"
    MINT_AUTHORITY_MISMATCH = "mint_authority_mismatch"
    UNKNOWN_MINT = "unknown_mint"

    INVALID_INPUT = "invalid_input"
    INVALID_PERIOD = "invalid_period"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORY[self]

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_CATEGORY: Dict[ErrorKind, ErrorCategory] = {
    ErrorKind.UNAUTHORIZED: ErrorCategory.UNAUTHORIZED,
    ErrorKind.SYSTEM_PAUSED: ErrorCategory.PRECONDITION,
    ErrorKind.STAKING_NOT_ENABLED: ErrorCategory.PRECONDITION,
    ErrorKind.INVALID_STAKE_AMOUNT: ErrorCategory.PRECONDITION,
    ErrorKind.STAKE_AMOUNT_TOO_LARGE: ErrorCategory.PRECONDITION,
    ErrorKind.INSUFFICIENT_FUNDS: ErrorCategory.PRECONDITION,
    ErrorKind.STAKING_PERIOD_NOT_COMPLETED: ErrorCategory.PRECONDITION,
    ErrorKind.REWARDS_ALREADY_CLAIMED: ErrorCategory.PRECONDITION,
    ErrorKind.INSUFFICIENT_REWARD_RESERVE: ErrorCategory.PRECONDITION,
    ErrorKind.STAKE_NOT_FOUND: ErrorCategory.PRECONDITION,
    ErrorKind.ALREADY_INITIALIZED: ErrorCategory.PRECONDITION,
    ErrorKind.ACTIVE_STAKES_EXIST: ErrorCategory.PRECONDITION,
    ErrorKind.MATH_OVERFLOW: ErrorCategory.ARITHMETIC,
    ErrorKind.NOT_INITIALIZED: ErrorCategory.CONFIGURATION,
    ErrorKind.STAKE_MINT_NOT_CONFIGURED: ErrorCategory.CONFIGURATION,
    ErrorKind.REWARD_RESERVE_NOT_CONFIGURED: ErrorCategory.CONFIGURATION,
    ErrorKind.INVALID_REWARD_RESERVE: ErrorCategory.CONFIGURATION,
    ErrorKind.PAYOUT_MODE_MISMATCH: ErrorCategory.CONFIGURATION,
    ErrorKind.MINT_AUTHORITY_MISMATCH: ErrorCategory.CONFIGURATION,
    ErrorKind.UNKNOWN_MINT: ErrorCategory.CONFIGURATION,
    ErrorKind.INVALID_INPUT: ErrorCategory.INVALID_PAYLOAD,
    ErrorKind.INVALID_PERIOD: ErrorCategory.INVALID_PAYLOAD,
}

_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.UNAUTHORIZED: "Caller is not allowed to perform this operation",
    ErrorKind.SYSTEM_PAUSED: "System is paused for emergency maintenance",
    ErrorKind.STAKING_NOT_ENABLED: "Staking is not enabled",
    ErrorKind.INVALID_STAKE_AMOUNT: "Stake amount must be greater than zero",
    ErrorKind.STAKE_AMOUNT_TOO_LARGE: "Stake amount exceeds the maximum allowed",
    ErrorKind.INSUFFICIENT_FUNDS: "Insufficient token balance",
    ErrorKind.STAKING_PERIOD_NOT_COMPLETED: "Staking period has not completed yet",
    ErrorKind.REWARDS_ALREADY_CLAIMED: "Rewards for this stake were already claimed",
    ErrorKind.INSUFFICIENT_REWARD_RESERVE: "Reward reserve balance is too low to pay this reward",
    ErrorKind.STAKE_NOT_FOUND: "No stake record exists for this staker",
    ErrorKind.ALREADY_INITIALIZED: "Vault is already initialized",
    ErrorKind.ACTIVE_STAKES_EXIST: "Operation is not allowed while stakes are locked",
    ErrorKind.MATH_OVERFLOW: "Arithmetic overflow",
    ErrorKind.NOT_INITIALIZED: "Vault is not initialized",
    ErrorKind.STAKE_MINT_NOT_CONFIGURED: "Stake token mint is not configured",
    ErrorKind.REWARD_RESERVE_NOT_CONFIGURED: "Reward reserve is not configured",
    ErrorKind.INVALID_REWARD_RESERVE: "Reward reserve account is not valid for this vault",
    ErrorKind.PAYOUT_MODE_MISMATCH: "Operation does not apply to this vault's payout mode",
    ErrorKind.MINT_AUTHORITY_MISMATCH: "Vault authority cannot mint the stake token",
    ErrorKind.UNKNOWN_MINT: "Token mint does not exist",
    ErrorKind.INVALID_INPUT: "Invalid input",
    ErrorKind.INVALID_PERIOD: "Invalid staking period",
}


class VaultError(ApplyError):
    """ApplyError carrying a stable ErrorKind.

    code is the taxonomy category, reason is the kind value.
    """

    def __init__(self, kind: ErrorKind, details: Optional[Json] = None) -> None:
        super().__init__(kind.category.value, kind.value, details)
        self.kind = kind

    @property
    def message(self) -> str:
        return self.kind.message


def error_message(reason: str) -> str:
    """Human-readable text for a reason string, falling back to the reason."""
    try:
        return ErrorKind(str(reason)).message
    except ValueError:
        return str(reason)


__all__ = ["ApplyError", "ErrorCategory", "ErrorKind", "VaultError", "error_message"]
