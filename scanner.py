# scanner.py
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from telegram.ext import Application

from analysis.analyzer import OpportunityAnalyzer
from analysis.models import Opportunity, PairEvaluation, TokenPair
from analysis.price_filter import PriceSanityFilter
from config import AppConfig
from constants import C_BLUE, C_GREEN, C_RED, C_RESET, C_YELLOW
from services.quote_connectors import QuoteService, describe
from services.trade_executor import ExecutionOutcome, ExecutionResult, TradeExecutor
from storage import SQLiteRepository

logger = logging.getLogger(__name__)


@dataclass
class PairScanResult:
    pair: TokenPair
    evaluation: Optional[PairEvaluation] = None
    execution: Optional[ExecutionResult] = None

    @property
    def opportunity(self) -> Optional[Opportunity]:
        return self.evaluation.best if self.evaluation else None


class ArbitrageScanner:
    def __init__(
        self,
        config: AppConfig,
        quote_service: QuoteService,
        price_filter: PriceSanityFilter,
        analyzer: OpportunityAnalyzer,
        ledger,
        trade_executor: Optional[TradeExecutor] = None,
        repository: Optional[SQLiteRepository] = None,
        application: Optional[Application] = None,
    ):
        self.config = config
        self.quote_service = quote_service
        self.price_filter = price_filter
        self.analyzer = analyzer
        self.ledger = ledger
        self.trade_executor = trade_executor
        self.repository = repository
        self.application = application
        self.bot = application.bot if application else None
        # Shared with the Telegram handlers when a bot is running.
        self.status: Dict[str, Any] = application.bot_data if application else {}
        self._stopped = False
        self._current_scan_cycle_id: Optional[int] = None
        self._executions_in_cycle = 0

    async def start(self):
        """Starts the main scanning loop."""
        self._stopped = False
        logger.info(
            "Monitoring %d pairs on %d DEXes (threshold %d bps, execution %s)",
            len(self.config.pairs),
            len(self.config.dexes),
            self.analyzer.min_profit_bps,
            "enabled" if self.trade_executor else "disabled",
        )
        await self._run_main_loop()

    def stop(self) -> None:
        self._stopped = True

    async def _run_main_loop(self):
        """Scans forever: poll interval after a clean cycle, backoff after a failed one."""
        while not self._stopped:
            logger.info("=" * 50)
            logger.info("Starting new arbitrage scan cycle...")
            try:
                await self.run_scan_cycle()
                self.status['last_error'] = None
                delay = self.config.interval
            except Exception as e:
                logger.error(f"{C_RED}Error during scan cycle: {e}{C_RESET}")
                self.status['last_error'] = str(e)
                delay = self.config.error_backoff

            logger.info(f"Scan finished. Waiting {delay} seconds...")
            await asyncio.sleep(delay)

    async def run_scan_cycle(self) -> list[PairScanResult]:
        """Scans every configured pair once, in order, isolating per-pair failures."""
        block_number = await self.ledger.block_number()
        logger.info(
            "Scanning %d pairs at block %s",
            len(self.config.pairs),
            block_number,
            extra={"event": "scan_started"},
        )
        self._executions_in_cycle = 0
        self._current_scan_cycle_id = await self._record_scan_cycle_start(block_number)

        results: list[PairScanResult] = []
        for pair in self.config.pairs:
            try:
                results.append(await self.scan_pair(pair))
            except Exception as e:
                logger.error(f"{C_RED}Error scanning {pair.name}: {e}{C_RESET}")
                results.append(PairScanResult(pair=pair))

        found = sum(1 for result in results if result.opportunity)
        self.status['last_scan_time'] = time.strftime('%Y-%m-%d %H:%M:%S')
        self.status['found_last_scan'] = found
        self.status['last_block'] = block_number

        await self._record_scan_cycle_finish(found)
        self._current_scan_cycle_id = None
        logger.info(f"Scan complete. Found {found} profitable routes.")
        return results

    async def scan_pair(self, pair: TokenPair) -> PairScanResult:
        """Quotes, filters and evaluates one pair; executes the best route when it clears the threshold."""
        logger.info(f"Checking {C_YELLOW}{pair.name}{C_RESET}")
        result = PairScanResult(pair=pair)
        amount_in = self.config.amount_in_for(pair)

        quotes = await self.quote_service.collect(pair, amount_in)
        valid_quotes = self.price_filter.filter(pair, quotes)
        logger.debug("%s quotes: %s", pair.name, describe(valid_quotes))
        if len(valid_quotes) < 2:
            logger.info(f"{pair.name}: only {len(valid_quotes)} usable quotes; skipping.")
            return result

        result.evaluation = self.analyzer.evaluate(pair, amount_in, valid_quotes)
        for route in result.evaluation.routes:
            logger.debug("%s %s: profit=%s (%d bps)", pair.name, route.label, route.profit, route.profit_bps)

        opportunity = result.evaluation.best
        if opportunity is None:
            logger.info(f"No profitable route for {pair.name}")
            return result

        logger.info(
            f"{C_GREEN}OPPORTUNITY: {pair.name} {opportunity.route} | "
            f"profit {opportunity.expected_profit} ({opportunity.profit_bps} bps){C_RESET}",
            extra={"event": "opportunity_found"},
        )

        if not self.analyzer.meets_threshold(opportunity):
            logger.info(
                f"{pair.name}: {opportunity.profit_bps} bps below threshold "
                f"{self.analyzer.min_profit_bps} bps; not executing."
            )
            return result

        if not self.trade_executor:
            logger.info(f"{C_BLUE}Auto trading disabled; reporting only.{C_RESET}")
            await self._send_telegram_notification(opportunity, None)
            return result

        result.execution = await self.trade_executor.execute(opportunity)
        if result.execution.outcome != ExecutionOutcome.SKIPPED:
            self._executions_in_cycle += 1
        await self._record_execution(opportunity, result.execution)
        await self._send_telegram_notification(opportunity, result.execution)
        return result

    async def _record_scan_cycle_start(self, block_number: Optional[int]) -> Optional[int]:
        if not self.repository:
            return None
        try:
            return await self.repository.record_scan_cycle_start(
                [pair.name for pair in self.config.pairs], block_number
            )
        except Exception as exc:
            logger.error(f"{C_RED}Failed to persist scan cycle start: {exc}{C_RESET}")
            return None

    async def _record_scan_cycle_finish(self, opportunities_found: int) -> None:
        if not self.repository or self._current_scan_cycle_id is None:
            return
        try:
            await self.repository.record_scan_cycle_finish(
                self._current_scan_cycle_id, opportunities_found, self._executions_in_cycle
            )
        except Exception as exc:
            logger.error(f"{C_RED}Failed to persist scan cycle finish: {exc}{C_RESET}")

    async def _record_execution(self, opportunity: Opportunity, execution: ExecutionResult) -> None:
        if not self.repository:
            return
        try:
            await self.repository.record_execution(
                scan_cycle_id=self._current_scan_cycle_id,
                pair=opportunity.pair.name,
                route=opportunity.route,
                outcome=execution.outcome.value,
                amount_in=opportunity.amount_in,
                profit_bps=opportunity.profit_bps,
                expected_profit=execution.expected_profit,
                live_expected_profit=execution.live_expected_profit,
                realized_profit=execution.realized_profit,
                tx_hash=execution.tx_hash,
                block_number=execution.block_number,
                gas_used=execution.gas_used,
                reason=execution.reason,
            )
        except Exception as exc:
            logger.error(f"{C_RED}Failed to persist execution result: {exc}{C_RESET}")

    async def _send_telegram_notification(self, opportunity: Opportunity, execution: Optional[ExecutionResult]):
        if not (self.config.telegram_enabled and self.bot):
            return
        try:
            await self.bot.send_message(
                chat_id=self.config.telegram_chat_id,
                text=self.format_opportunity_message(opportunity, execution),
                parse_mode='HTML',
            )
        except Exception as exc:
            logger.error(f"{C_RED}Failed to send Telegram notification: {exc}{C_RESET}")

    @staticmethod
    def format_opportunity_message(opportunity: Opportunity, execution: Optional[ExecutionResult]) -> str:
        """Formats an opportunity and its execution outcome for Telegram."""
        pair = opportunity.pair
        scale = 10 ** pair.decimals_a

        def _amount(value: Optional[int]) -> str:
            if value is None:
                return "-"
            return f"{value / scale:.6f} {pair.symbol_a}"

        lines = [
            f"⚡ <b>Arbitrage: {pair.name}</b>",
            "",
            f"<b>Route:</b> {opportunity.route}",
            f"<b>Size:</b> {_amount(opportunity.amount_in)}",
            f"<b>Expected:</b> {_amount(opportunity.expected_profit)} ({opportunity.profit_bps} bps)",
        ]
        if execution is None:
            lines.append("<b>Status:</b> reported only")
        else:
            lines.append(f"<b>Status:</b> {execution.outcome.value}")
            if execution.live_expected_profit is not None:
                lines.append(f"<b>Live:</b> {_amount(execution.live_expected_profit)}")
            if execution.realized_profit is not None:
                lines.append(f"<b>Realized:</b> {_amount(execution.realized_profit)}")
            if execution.tx_hash:
                lines.append(f"<b>Tx:</b> <code>{execution.tx_hash}</code>")
            if execution.reason:
                lines.append(f"<b>Reason:</b> {execution.reason}")
        return "\n".join(lines)
