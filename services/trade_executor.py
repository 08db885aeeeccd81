"""Turns a detected opportunity into one atomic flash-loan transaction."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from analysis.analyzer import apply_fee, flash_loan_premium, inverse_amount
from analysis.models import Opportunity
from analysis.swap_instructions import SwapInstruction, build_swap_instruction
from constants import C_GREEN, C_RED, C_RESET, C_YELLOW
from exceptions import EstimationError, LedgerError, SubmissionError

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000


class ExecutionOutcome(str, Enum):
    SUCCESS = 'success'
    REVERTED = 'reverted'
    SUBMISSION_FAILED = 'submission_failed'
    SKIPPED = 'skipped'


class GasPlan(str, Enum):
    ESTIMATED = 'estimated'
    FIXED_CEILING = 'fixed_ceiling'


@dataclass(slots=True)
class LiveQuote:
    leg1_out: int
    leg2_out: int
    reverse_leg: str  # 'direct' or 'inverse'


@dataclass(slots=True)
class SubmissionAttempt:
    plan: GasPlan
    tx_hash: Optional[str] = None
    gas_limit: Optional[int] = None
    failure: Optional[str] = None


@dataclass(slots=True)
class ExecutionResult:
    opportunity_key: str
    outcome: ExecutionOutcome
    expected_profit: int
    live_expected_profit: Optional[int] = None
    realized_profit: Optional[int] = None
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    gas_limit: Optional[int] = None
    reason: Optional[str] = None
    reverse_leg: Optional[str] = None

    @property
    def executed(self) -> bool:
        return self.outcome == ExecutionOutcome.SUCCESS


class TradeExecutor:
    """
    Re-quotes live, applies the repayment gate, then submits through the
    arbitrage contract. Only one execution is ever in flight.
    """

    def __init__(
        self,
        ledger,
        contract,
        quote_service,
        *,
        recipient: str,
        slippage_pct: float,
        flash_loan_premium_bps: int,
        leg2_input_buffer_pct: int,
        gas_buffer_pct: int,
        fallback_gas_limit: int,
    ) -> None:
        self.ledger = ledger
        self.contract = contract
        self.quote_service = quote_service
        self.recipient = recipient
        self.slippage_bps = int(round(slippage_pct * 100))
        self.flash_loan_premium_bps = flash_loan_premium_bps
        self.leg2_input_buffer_pct = leg2_input_buffer_pct
        self.gas_buffer_pct = gas_buffer_pct
        self.fallback_gas_limit = fallback_gas_limit
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def execute(self, opportunity: Opportunity) -> ExecutionResult:
        async with self._lock:
            return await self._execute_locked(opportunity)

    def min_amount_out(self, quoted: int) -> int:
        return quoted * (BPS_DENOMINATOR - self.slippage_bps) // BPS_DENOMINATOR

    async def requote(self, opportunity: Opportunity) -> Optional[LiveQuote]:
        pair = opportunity.pair
        source, target = opportunity.source, opportunity.target

        leg1_out = await self.quote_service.quote(
            source.dex, pair, pair.token_a, pair.token_b, opportunity.amount_in, source.fee_tier
        )
        if leg1_out is None:
            return None

        if self.quote_service.supports_live_reverse(target.dex):
            leg2_out = await self.quote_service.quote(
                target.dex, pair, pair.token_b, pair.token_a, leg1_out, target.fee_tier
            )
            if leg2_out is None:
                return None
            return LiveQuote(leg1_out=leg1_out, leg2_out=leg2_out, reverse_leg='direct')

        # No reverse quoter: reuse the detection-time rate, target fee included.
        leg2_out = inverse_amount(apply_fee(leg1_out, target.fee_rate), target, pair)
        return LiveQuote(leg1_out=leg1_out, leg2_out=leg2_out, reverse_leg='inverse')

    def build_legs(self, opportunity: Opportunity, min_out1: int, min_out2: int) -> tuple[SwapInstruction, SwapInstruction]:
        pair = opportunity.pair
        leg1 = build_swap_instruction(
            opportunity.source.dex,
            pair,
            pair.token_a,
            pair.token_b,
            opportunity.amount_in,
            min_out1,
            opportunity.source.fee_tier,
        )
        # Leg 2 spends slightly less than leg 1 guarantees so it never overdraws.
        leg2_amount_in = min_out1 * (100 - self.leg2_input_buffer_pct) // 100
        leg2 = build_swap_instruction(
            opportunity.target.dex,
            pair,
            pair.token_b,
            pair.token_a,
            leg2_amount_in,
            min_out2,
            opportunity.target.fee_tier,
        )
        return leg1, leg2

    async def _execute_locked(self, opportunity: Opportunity) -> ExecutionResult:
        pair = opportunity.pair
        result = ExecutionResult(
            opportunity_key=opportunity.key,
            outcome=ExecutionOutcome.SKIPPED,
            expected_profit=opportunity.expected_profit,
        )

        live = await self.requote(opportunity)
        if live is None:
            result.reason = "Live quote unavailable"
            logger.warning("%s%s: %s; not executing.%s", C_YELLOW, opportunity.key, result.reason, C_RESET)
            return result
        result.reverse_leg = live.reverse_leg

        min_out1 = self.min_amount_out(live.leg1_out)
        min_out2 = self.min_amount_out(live.leg2_out)
        min_repayment = opportunity.amount_in + flash_loan_premium(opportunity.amount_in, self.flash_loan_premium_bps)
        result.live_expected_profit = live.leg2_out - min_repayment

        logger.info(
            "%s live quotes: leg1=%s (min %s) leg2=%s (min %s, %s) repayment=%s",
            opportunity.key,
            live.leg1_out,
            min_out1,
            live.leg2_out,
            min_out2,
            live.reverse_leg,
            min_repayment,
        )

        if min_out2 <= min_repayment:
            result.reason = (
                f"Insufficient profit after slippage: min output {min_out2} <= repayment {min_repayment}"
            )
            logger.warning("%s%s: %s%s", C_YELLOW, opportunity.key, result.reason, C_RESET)
            return result

        try:
            leg1, leg2 = self.build_legs(opportunity, min_out1, min_out2)
        except ValueError as exc:
            result.reason = f"Cannot build swap instructions: {exc}"
            logger.error("%s%s: %s%s", C_RED, opportunity.key, result.reason, C_RESET)
            return result

        await self._log_contract_recipient()
        balance_before = await self.ledger.token_balance(pair.token_a, self.recipient)

        call = self.contract.execute_arbitrage(pair.token_a, opportunity.amount_in, leg1, leg2, self.recipient)
        attempt = await self.submit_with_fallback(call)
        result.gas_limit = attempt.gas_limit
        if attempt.tx_hash is None:
            result.outcome = ExecutionOutcome.SUBMISSION_FAILED
            result.reason = attempt.failure
            logger.error(
                "%s%s: submission failed: %s%s",
                C_RED,
                opportunity.key,
                attempt.failure,
                C_RESET,
                extra={"event": "execution_failed"},
            )
            return result

        result.tx_hash = attempt.tx_hash
        logger.info(
            "%s: submitted %s (gas limit %s, %s)",
            opportunity.key,
            attempt.tx_hash,
            attempt.gas_limit,
            attempt.plan.value,
            extra={"event": "execution_submitted"},
        )

        try:
            receipt = await self.ledger.wait_for_receipt(attempt.tx_hash)
        except LedgerError as exc:
            # Broadcast already happened; the transaction is never resubmitted.
            result.outcome = ExecutionOutcome.SUBMISSION_FAILED
            result.reason = f"Receipt unavailable: {exc}"
            logger.error("%s%s: %s%s", C_RED, opportunity.key, result.reason, C_RESET, extra={"event": "execution_failed"})
            return result

        result.block_number = receipt.block_number
        result.gas_used = receipt.gas_used
        self._log_gas(receipt, attempt.gas_limit)

        if not receipt.succeeded:
            result.outcome = ExecutionOutcome.REVERTED
            result.reason = receipt.revert_reason or "Transaction reverted"
            logger.error(
                "%s%s: reverted in block %s: %s%s",
                C_RED,
                opportunity.key,
                receipt.block_number,
                result.reason,
                C_RESET,
                extra={"event": "execution_failed"},
            )
            return result

        result.outcome = ExecutionOutcome.SUCCESS
        try:
            balance_after = await self.ledger.token_balance(pair.token_a, self.recipient)
        except LedgerError as exc:
            result.reason = f"Confirmed, but profit reconciliation failed: {exc}"
            logger.warning(
                "%s%s: confirmed in block %s; %s%s",
                C_YELLOW,
                opportunity.key,
                receipt.block_number,
                result.reason,
                C_RESET,
                extra={"event": "execution_confirmed"},
            )
            return result
        result.realized_profit = balance_after - balance_before
        logger.info(
            "%s%s: confirmed in block %s; expected %s, live %s, realized %s%s",
            C_GREEN,
            opportunity.key,
            receipt.block_number,
            result.expected_profit,
            result.live_expected_profit,
            result.realized_profit,
            C_RESET,
            extra={"event": "execution_confirmed"},
        )
        if result.realized_profit <= 0:
            logger.warning("%s: transaction succeeded but no profit reached %s", opportunity.key, self.recipient)
        return result

    async def submit_with_fallback(self, call) -> SubmissionAttempt:
        """
        Two-step submission policy.

        Step one uses a buffered gas estimate at the current gas price. If
        estimation fails or the node rejects the transaction before broadcast,
        step two retries once with a fixed gas ceiling and a ledger-chosen price.
        """
        attempt = SubmissionAttempt(plan=GasPlan.ESTIMATED)
        for plan in (GasPlan.ESTIMATED, GasPlan.FIXED_CEILING):
            attempt = await self._attempt(call, plan)
            if attempt.tx_hash is not None:
                return attempt
            logger.warning("Submission step %s failed: %s", plan.value, attempt.failure)
        return attempt

    async def _attempt(self, call, plan: GasPlan) -> SubmissionAttempt:
        attempt = SubmissionAttempt(plan=plan)
        try:
            if plan == GasPlan.ESTIMATED:
                estimate = await self.ledger.estimate_gas(call)
                attempt.gas_limit = estimate * (100 + self.gas_buffer_pct) // 100
                gas_price = await self.ledger.gas_price()
                attempt.tx_hash = await self.ledger.submit(call, gas_limit=attempt.gas_limit, gas_price=gas_price)
            else:
                attempt.gas_limit = self.fallback_gas_limit
                attempt.tx_hash = await self.ledger.submit(call, gas_limit=attempt.gas_limit)
        except EstimationError as exc:
            attempt.failure = f"estimation: {exc}"
        except SubmissionError as exc:
            attempt.failure = f"submission: {exc}"
        except LedgerError as exc:
            attempt.failure = f"ledger: {exc}"
        return attempt

    async def _log_contract_recipient(self) -> None:
        try:
            current = await self.contract.profit_recipient()
        except LedgerError as exc:
            logger.debug("Could not read contract profit recipient: %s", exc)
            return
        logger.info("Contract profit recipient: %s; sending profit to %s", current, self.recipient)

    @staticmethod
    def _log_gas(receipt, gas_limit: Optional[int]) -> None:
        if not receipt.gas_used:
            return
        usage = f"{receipt.gas_used * 100 / gas_limit:.1f}% of limit" if gas_limit else "no limit recorded"
        cost = receipt.gas_used * receipt.effective_gas_price if receipt.effective_gas_price else None
        logger.info("Gas used: %s (%s), cost: %s wei", receipt.gas_used, usage, cost if cost is not None else "-")
