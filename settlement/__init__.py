"""Settlement simulation for flash-loan arbitrage transactions."""

from .flash_loan import (
    BalanceBook,
    ConstantProductVenue,
    FlashLoanSettlement,
    SettlementReceipt,
    SettlementState,
)

__all__ = [
    "BalanceBook",
    "ConstantProductVenue",
    "FlashLoanSettlement",
    "SettlementReceipt",
    "SettlementState",
]
