"""
Exception hierarchy for the flash-loan arbitrage bot.

Ledger failures are split by the point at which they happen so the execution
coordinator can tell a rejected submission (safe to retry) from a transaction
that reached the chain and reverted (never resubmitted).
"""

from typing import Any, Dict, Optional


class ArbitrageBotError(Exception):
    """Base exception for all bot related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(ArbitrageBotError):
    """Raised when required configuration is missing or malformed."""

    pass


class LedgerError(ArbitrageBotError):
    """Raised when an interaction with the ledger fails."""

    pass


class LedgerTransportError(LedgerError):
    """RPC endpoint unreachable or returned a malformed response."""

    pass


class RevertError(LedgerError):
    """A call or transaction was reverted by the ledger."""

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.reason = reason


class EstimationError(LedgerError):
    """Gas estimation failed; nothing was broadcast."""

    pass


class SubmissionError(LedgerError):
    """The transaction was rejected before it reached the mempool."""

    pass


class SettlementError(ArbitrageBotError):
    """Raised by the settlement state machine."""

    pass


class SettlementReverted(SettlementError):
    """The settlement sequence failed and every balance change was undone."""

    def __init__(
        self,
        reason: str,
        state: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(reason, details)
        self.reason = reason
        self.state = state
