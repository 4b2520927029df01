"""
Treasury transfer error taxonomy.

Every failure the orchestrator can hit maps to a FailureReason. Reasons carry
whether a later pass may retry and how loudly operators should hear about it.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional


class FailureReason(str, Enum):
    NO_BALANCE = "NoBalance"
    ALREADY_RELEASED = "AlreadyReleased"
    NOT_CONFIRMED = "NotConfirmed"
    IN_PROGRESS = "InProgress"
    ESTIMATION_ERROR = "EstimationError"
    INSUFFICIENT_GAS_PAYER_FUNDS = "InsufficientGasPayerFunds"
    TOP_UP_FAILED = "TopUpFailed"
    APPROVAL_FAILED = "ApprovalFailed"
    ALLOWANCE_MISMATCH = "AllowanceMismatch"
    TRANSFER_FAILED = "TransferFailed"
    CHAIN_TIMEOUT = "ChainTimeout"
    CHAIN_ERROR = "ChainError"
    LEDGER_SYNC_FAILED = "LedgerSyncFailed"

    @property
    def retryable(self) -> bool:
        return self not in _NON_RETRYABLE

    @property
    def log_level(self) -> int:
        return _LOG_LEVELS.get(self, logging.WARNING)

    @property
    def alerts_operator(self) -> bool:
        return self in _OPERATOR_ALERTS


_NON_RETRYABLE = {
    FailureReason.NO_BALANCE,
    FailureReason.ALREADY_RELEASED,
    FailureReason.NOT_CONFIRMED,
}

_LOG_LEVELS = {
    FailureReason.NO_BALANCE: logging.INFO,
    FailureReason.ALREADY_RELEASED: logging.INFO,
    FailureReason.NOT_CONFIRMED: logging.INFO,
    FailureReason.IN_PROGRESS: logging.INFO,
    FailureReason.INSUFFICIENT_GAS_PAYER_FUNDS: logging.ERROR,
    FailureReason.ALLOWANCE_MISMATCH: logging.ERROR,
    FailureReason.LEDGER_SYNC_FAILED: logging.CRITICAL,
}

_OPERATOR_ALERTS = {
    FailureReason.INSUFFICIENT_GAS_PAYER_FUNDS,
    FailureReason.ALLOWANCE_MISMATCH,
    FailureReason.LEDGER_SYNC_FAILED,
}


class TreasuryError(Exception):
    """Base class for step-level failures inside a treasury transfer."""

    reason = FailureReason.CHAIN_ERROR

    def __init__(self, message: str, *, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class ChainError(TreasuryError):
    """An RPC read or submission failed for reasons other than a revert."""

    reason = FailureReason.CHAIN_ERROR


class EstimationError(TreasuryError):
    """Gas estimation reverted; the call would fail if sent."""

    reason = FailureReason.ESTIMATION_ERROR


class InsufficientGasPayerFunds(TreasuryError):
    reason = FailureReason.INSUFFICIENT_GAS_PAYER_FUNDS

    def __init__(self, required: int, available: int):
        super().__init__(
            f"Insufficient gas payer balance. Required: {required} wei, "
            f"Available: {available} wei"
        )
        self.required = required
        self.available = available


class TopUpFailed(TreasuryError):
    reason = FailureReason.TOP_UP_FAILED


class ApprovalFailed(TreasuryError):
    reason = FailureReason.APPROVAL_FAILED


class AllowanceMismatch(TreasuryError):
    reason = FailureReason.ALLOWANCE_MISMATCH

    def __init__(self, required: int, granted: int):
        super().__init__(
            f"Insufficient allowance. Required: {required}, Granted: {granted}"
        )
        self.required = required
        self.granted = granted


class TransferFailed(TreasuryError):
    reason = FailureReason.TRANSFER_FAILED


class ChainTimeoutError(TreasuryError):
    """No receipt within the bounded wait. The transaction may still land."""

    reason = FailureReason.CHAIN_TIMEOUT


class LedgerSyncFailed(TreasuryError):
    """On-chain transfer succeeded but the ledger could not be updated."""

    reason = FailureReason.LEDGER_SYNC_FAILED
