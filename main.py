#!/usr/bin/env python3
import asyncio
import logging
import time
from datetime import datetime
from decimal import Decimal

from telegram import BotCommand
from telegram.ext import Application, CommandHandler
from telegram.error import TimedOut, TelegramError

import constants
import logging_config
from analysis.analyzer import OpportunityAnalyzer
from analysis.price_filter import PriceSanityFilter
from bot.handlers import (
    executions_command,
    help_command,
    scaninfo_command,
    status_command,
)
from config import AppConfig, load_config
from exceptions import LedgerError
from scanner import ArbitrageScanner
from services.arbitrage_contract import ArbitrageContract
from services.ledger_client import LedgerClient
from services.quote_connectors import QuoteService
from services.signer import LocalSigner
from services.trade_executor import TradeExecutor
from storage import SQLiteRepository

logger = logging.getLogger(__name__)


def build_ledger(config: AppConfig) -> LedgerClient:
    signer = LocalSigner(config.private_key)
    return LedgerClient(config.rpc_url, signer, receipt_timeout=config.receipt_timeout)


def build_scanner(config: AppConfig, ledger: LedgerClient, repository=None, application=None) -> ArbitrageScanner:
    """Wires the monitoring components from configuration."""
    quote_service = QuoteService.for_ledger(ledger, config.dexes)
    analyzer = OpportunityAnalyzer(config.flash_loan_premium_bps, config.min_profit_bps)

    trade_executor = None
    if config.auto_trade:
        contract = ArbitrageContract(ledger, config.arbitrage_contract_address)
        trade_executor = TradeExecutor(
            ledger,
            contract,
            quote_service,
            recipient=config.profit_recipient or ledger.address,
            slippage_pct=config.slippage,
            flash_loan_premium_bps=config.flash_loan_premium_bps,
            leg2_input_buffer_pct=config.leg2_buffer,
            gas_buffer_pct=config.gas_buffer,
            fallback_gas_limit=config.fallback_gas_limit,
        )
        logger.info("Trade executor initialized; profits go to %s", trade_executor.recipient)

    return ArbitrageScanner(
        config,
        quote_service,
        PriceSanityFilter(),
        analyzer,
        ledger,
        trade_executor=trade_executor,
        repository=repository,
        application=application,
    )


async def post_init_hook(application: Application) -> None:
    """Runs after the bot is initialized: registers commands and starts the scanner task."""
    config: AppConfig = application.bot_data['config']

    commands = [
        BotCommand("status", "Check bot status"),
        BotCommand("scaninfo", "See monitored pairs and thresholds"),
        BotCommand("executions", "Show recent executions"),
        BotCommand("help", "Show help message"),
    ]
    try:
        await application.bot.set_my_commands(commands)
    except (TimedOut, TelegramError) as exc:
        logger.warning(f"Unable to set Telegram bot commands ({exc}). Continuing startup without updating commands.")

    ledger = build_ledger(config)
    scanner = build_scanner(config, ledger, application.bot_data.get('repository'), application)
    application.bot_data['trade_executor'] = scanner.trade_executor
    application.bot_data['scanner'] = scanner
    application.bot_data['scanner_task'] = asyncio.create_task(scanner.start())


async def post_shutdown_hook(application: Application) -> None:
    """Runs on application shutdown to clean up resources."""
    scanner = application.bot_data.get('scanner')
    if scanner:
        scanner.stop()
    task = application.bot_data.get('scanner_task')
    if task and not task.done():
        task.cancel()
    repository = application.bot_data.get('repository')
    if repository:
        await repository.close()


async def run_headless(config: AppConfig) -> None:
    """Runs the scanner without a Telegram front end."""
    repository = SQLiteRepository(config.db_path)
    scanner = build_scanner(config, build_ledger(config), repository)
    try:
        await scanner.start()
    finally:
        await repository.close()


async def check_connection(config: AppConfig) -> None:
    """Prints chain, block and wallet details for the configured RPC endpoint."""
    ledger = build_ledger(config)
    try:
        chain_id = await ledger.chain_id()
        block_number = await ledger.block_number()
        balance = await ledger.native_balance(ledger.address)
    except LedgerError as exc:
        print(f"{constants.C_RED}Connection check failed: {exc}{constants.C_RESET}")
        exit(1)

    print(f"{constants.C_GREEN}Connected to chain {chain_id}{constants.C_RESET}")
    print(f"Latest block: {block_number}")
    print(f"Wallet: {ledger.address}")
    print(f"Balance: {Decimal(balance) / Decimal(10**18):.6f} ETH")

    contract = ArbitrageContract(ledger, config.arbitrage_contract_address)
    try:
        recipient = await contract.profit_recipient()
        print(f"Arbitrage contract {contract.address} profit recipient: {recipient}")
    except LedgerError as exc:
        print(f"{constants.C_YELLOW}Could not read arbitrage contract at {contract.address}: {exc}{constants.C_RESET}")


async def approve_base_tokens(config: AppConfig) -> None:
    """Approves the arbitrage contract to spend every configured base token."""
    ledger = build_ledger(config)
    spender = ledger.checksum(config.arbitrage_contract_address)
    seen: set[str] = set()
    for pair in config.pairs:
        token = pair.token_a.lower()
        if token in seen:
            continue
        seen.add(token)

        current = await ledger.allowance(pair.token_a, ledger.address, spender)
        if current >= constants.MAX_UINT256 // 2:
            print(f"{pair.symbol_a} already approved for {spender}")
            continue

        call = ledger.approve_call(pair.token_a, spender, constants.MAX_UINT256)
        try:
            gas_limit = await ledger.estimate_gas(call) * (100 + config.gas_buffer) // 100
        except LedgerError as exc:
            print(f"{constants.C_YELLOW}Estimation failed for {pair.symbol_a} approval ({exc}); using fixed gas limit.{constants.C_RESET}")
            gas_limit = config.fallback_gas_limit
        tx_hash = await ledger.submit(call, gas_limit=gas_limit)
        print(f"Approval for {pair.symbol_a} submitted: {tx_hash}")
        receipt = await ledger.wait_for_receipt(tx_hash)
        if receipt.succeeded:
            print(f"{constants.C_GREEN}{pair.symbol_a} approved in block {receipt.block_number}{constants.C_RESET}")
        else:
            print(f"{constants.C_RED}{pair.symbol_a} approval reverted: {receipt.revert_reason}{constants.C_RESET}")


def main() -> None:
    """The main synchronous entry point for the application."""
    config = load_config()
    logging_config.setup(config.log_level)

    if config.show_executions:
        repository = SQLiteRepository(config.db_path)
        try:
            records = asyncio.run(
                repository.fetch_recent_executions(
                    limit=config.executions_limit,
                    pair=config.executions_pair,
                )
            )
        finally:
            asyncio.run(repository.close())
        _print_execution_records(records, config.executions_limit, config.executions_pair)
        return

    if config.check_connection:
        asyncio.run(check_connection(config))
        return

    if config.approve:
        asyncio.run(approve_base_tokens(config))
        return

    if not config.telegram_enabled:
        print("Telegram is not configured. The application will run in CLI-only mode.")
        try:
            asyncio.run(run_headless(config))
        except KeyboardInterrupt:
            print("Stopped.")
        return

    application = (
        Application.builder()
        .token(config.telegram_bot_token)
        .post_init(post_init_hook)
        .post_shutdown(post_shutdown_hook)
        .build()
    )

    # Store config and other shared data
    application.bot_data['config'] = config
    application.bot_data['start_time'] = time.time()
    application.bot_data['repository'] = SQLiteRepository(config.db_path)
    application.bot_data['trade_executor'] = None

    # Register command handlers
    application.add_handler(CommandHandler("start", help_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("status", status_command))
    application.add_handler(CommandHandler("scaninfo", scaninfo_command))
    application.add_handler(CommandHandler("executions", executions_command))

    application.run_polling()


def _print_execution_records(records: list, limit: int, pair: str | None) -> None:
    heading = f"Showing up to {limit} execution records"
    if pair:
        heading += f" (pair={pair.upper()})"
    print(heading)
    print("=" * len(heading))

    if not records:
        print("No execution records found.")
        return

    headers = [
        "Time (UTC)",
        "Pair",
        "Route",
        "Outcome",
        "BPS",
        "Expected",
        "Realized",
        "Tx",
    ]

    def _format_tx(tx_hash: str | None) -> str:
        if not tx_hash:
            return "-"
        return f"{tx_hash[:10]}...{tx_hash[-6:]}"

    def _format_row(record) -> list[str]:
        recorded_at: datetime = record.recorded_at
        time_str = recorded_at.strftime("%Y-%m-%d %H:%M:%S") if recorded_at else "N/A"
        return [
            time_str,
            record.pair,
            record.route,
            record.outcome,
            str(record.profit_bps),
            str(record.expected_profit),
            str(record.realized_profit) if record.realized_profit is not None else "-",
            _format_tx(record.tx_hash),
        ]

    rows = [_format_row(rec) for rec in records]
    widths = [len(h) for h in headers]
    for row in rows:
        for idx, cell in enumerate(row):
            widths[idx] = max(widths[idx], len(cell))

    def _format_line(row: list[str]) -> str:
        return "  ".join(cell.ljust(widths[idx]) for idx, cell in enumerate(row))

    print(_format_line(headers))
    print("  ".join('-' * w for w in widths))
    for row in rows:
        print(_format_line(row))


if __name__ == "__main__":
    main()
