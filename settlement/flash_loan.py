"""
In-process model of the flash-loan receiver's settlement sequence.

Mirrors what the deployed contract does inside one transaction: borrow the
base asset, run both swaps, repay principal plus premium and hand the surplus
to the profit recipient. Any failure puts every balance back as it was before
the borrow, which is how the ledger's atomic revert behaves.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Mapping, Optional, Protocol, Tuple

from analysis.models import DexId
from analysis.swap_instructions import SwapInstruction
from exceptions import SettlementError, SettlementReverted

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000


class SettlementState(str, Enum):
    IDLE = 'idle'
    BORROWED = 'borrowed'
    LEG1_SWAPPED = 'leg1_swapped'
    LEG2_SWAPPED = 'leg2_swapped'
    REPAID = 'repaid'
    PROFIT_DISTRIBUTED = 'profit_distributed'
    REVERTED = 'reverted'


class InsufficientBalance(SettlementError):
    pass


class BalanceBook:
    """Token balances keyed by (holder, token); addresses compare case-insensitively."""

    def __init__(self, balances: Optional[Mapping[Tuple[str, str], int]] = None) -> None:
        self._balances: Dict[Tuple[str, str], int] = {}
        for (holder, token), amount in (balances or {}).items():
            self._balances[self._key(holder, token)] = amount

    @staticmethod
    def _key(holder: str, token: str) -> Tuple[str, str]:
        return holder.lower(), token.lower()

    def balance_of(self, holder: str, token: str) -> int:
        return self._balances.get(self._key(holder, token), 0)

    def credit(self, holder: str, token: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        key = self._key(holder, token)
        self._balances[key] = self._balances.get(key, 0) + amount

    def debit(self, holder: str, token: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        key = self._key(holder, token)
        available = self._balances.get(key, 0)
        if available < amount:
            raise InsufficientBalance(
                f"{holder} holds {available} of {token}, needs {amount}",
                details={"holder": holder, "token": token, "available": available, "required": amount},
            )
        self._balances[key] = available - amount

    def transfer(self, sender: str, receiver: str, token: str, amount: int) -> None:
        self.debit(sender, token, amount)
        self.credit(receiver, token, amount)

    def snapshot(self) -> Dict[Tuple[str, str], int]:
        return copy.copy(self._balances)

    def restore(self, snapshot: Dict[Tuple[str, str], int]) -> None:
        self._balances = copy.copy(snapshot)


class SwapVenue(Protocol):
    def swap(self, book: BalanceBook, trader: str, instruction: SwapInstruction) -> int:
        """Moves tokens in the book and returns the amount of token_out received."""


class ConstantProductVenue:
    """x*y=k pool whose reserves are the pool address's balances in the book."""

    def __init__(self, address: str, fee: Decimal = Decimal('0.003')) -> None:
        self.address = address
        self.fee = fee

    def amount_out(self, book: BalanceBook, token_in: str, token_out: str, amount_in: int) -> int:
        reserve_in = book.balance_of(self.address, token_in)
        reserve_out = book.balance_of(self.address, token_out)
        if reserve_in == 0 or reserve_out == 0:
            return 0
        fee_factor = int((Decimal(1) - self.fee) * 1000)
        amount_in_with_fee = amount_in * fee_factor
        return amount_in_with_fee * reserve_out // (reserve_in * 1000 + amount_in_with_fee)

    def swap(self, book: BalanceBook, trader: str, instruction: SwapInstruction) -> int:
        received = self.amount_out(book, instruction.token_in, instruction.token_out, instruction.amount_in)
        book.transfer(trader, self.address, instruction.token_in, instruction.amount_in)
        book.transfer(self.address, trader, instruction.token_out, received)
        return received


@dataclass
class SettlementReceipt:
    asset: str
    amount: int
    premium: int
    leg1_received: int
    leg2_received: int
    profit: int
    recipient: str
    trail: List[SettlementState] = field(default_factory=list)


class FlashLoanSettlement:
    """Borrow -> swap -> swap -> repay -> distribute, all or nothing."""

    def __init__(
        self,
        book: BalanceBook,
        *,
        address: str,
        lender: str,
        owner: str,
        premium_bps: int,
        venues: Mapping[DexId, SwapVenue],
    ) -> None:
        self.book = book
        self.address = address
        self.lender = lender
        self.owner = owner
        self.premium_bps = premium_bps
        self.venues = dict(venues)
        self.profit_recipient: Optional[str] = None
        self.state = SettlementState.IDLE
        self.trail: List[SettlementState] = []

    def set_profit_recipient(self, caller: str, recipient: str) -> None:
        if caller.lower() != self.owner.lower():
            raise SettlementError("Only the owner can set the profit recipient")
        self.profit_recipient = recipient

    def premium_for(self, amount: int) -> int:
        return amount * self.premium_bps // BPS_DENOMINATOR

    def execute(
        self,
        initiator: str,
        asset: str,
        amount: int,
        leg1: SwapInstruction,
        leg2: SwapInstruction,
        recipient: Optional[str] = None,
    ) -> SettlementReceipt:
        snapshot = self.book.snapshot()
        self.trail = []
        try:
            return self._run(initiator, asset, amount, leg1, leg2, recipient)
        except Exception as exc:
            failed_at = self.state
            self.book.restore(snapshot)
            self._advance(SettlementState.REVERTED)
            reason = exc.reason if isinstance(exc, SettlementReverted) else str(exc)
            logger.warning("Settlement reverted after %s: %s", failed_at.value, reason)
            raise SettlementReverted(reason, state=failed_at) from exc

    def _run(self, initiator, asset, amount, leg1, leg2, recipient) -> SettlementReceipt:
        self.state = SettlementState.IDLE
        if leg1.token_in.lower() != asset.lower() or leg2.token_out.lower() != asset.lower():
            raise SettlementReverted("Swaps must start and end in the borrowed asset", self.state)
        if leg1.token_out.lower() != leg2.token_in.lower():
            raise SettlementReverted("Leg 2 must spend what leg 1 buys", self.state)

        opening_balance = self.book.balance_of(self.address, asset)
        premium = self.premium_for(amount)

        self.book.transfer(self.lender, self.address, asset, amount)
        self._advance(SettlementState.BORROWED)

        leg1_received = self._swap(leg1)
        self._advance(SettlementState.LEG1_SWAPPED)

        leg2_received = self._swap(leg2)
        self._advance(SettlementState.LEG2_SWAPPED)

        owed = amount + premium
        available = self.book.balance_of(self.address, asset) - opening_balance
        if available < owed:
            raise SettlementReverted(
                f"Insufficient funds to repay flash loan: have {available}, owe {owed}", self.state
            )
        self.book.transfer(self.address, self.lender, asset, owed)
        self._advance(SettlementState.REPAID)

        profit = available - owed
        payee = recipient or self.profit_recipient or initiator
        if profit > 0:
            self.book.transfer(self.address, payee, asset, profit)
        self._advance(SettlementState.PROFIT_DISTRIBUTED)

        return SettlementReceipt(
            asset=asset,
            amount=amount,
            premium=premium,
            leg1_received=leg1_received,
            leg2_received=leg2_received,
            profit=profit,
            recipient=payee,
            trail=list(self.trail),
        )

    def _swap(self, instruction: SwapInstruction) -> int:
        venue = self.venues.get(instruction.dex_id)
        if venue is None:
            raise SettlementReverted(f"No venue for {instruction.dex_id.name}", self.state)
        received = venue.swap(self.book, self.address, instruction)
        if received < instruction.min_amount_out:
            raise SettlementReverted(
                f"Too little received: {received} < {instruction.min_amount_out}", self.state
            )
        return received

    def _advance(self, state: SettlementState) -> None:
        self.state = state
        self.trail.append(state)
