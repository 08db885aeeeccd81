#!/usr/bin/env python3
import os
import argparse
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping, NamedTuple, Optional, Sequence

import yaml
from dotenv import load_dotenv

import constants
from analysis.models import DexConfig, DexId, DexKind, PoolRef, PriceBounds, TokenPair
from exceptions import ConfigurationError


class AppConfig(NamedTuple):
    """Typed configuration object."""
    rpc_url: Optional[str]
    private_key: Optional[str]
    arbitrage_contract_address: Optional[str]
    profit_recipient: Optional[str]
    dexes: tuple[DexConfig, ...]
    pairs: tuple[TokenPair, ...]
    trade_amount: Decimal
    min_profit_bps: int
    slippage: float
    flash_loan_premium_bps: int
    leg2_buffer: int
    gas_buffer: int
    fallback_gas_limit: int
    interval: int
    error_backoff: int
    receipt_timeout: int
    auto_trade: bool
    telegram_enabled: bool
    telegram_bot_token: Optional[str]
    telegram_chat_id: Optional[str]
    db_path: str
    log_level: str
    show_executions: bool
    executions_limit: int
    executions_pair: Optional[str]
    check_connection: bool
    approve: bool

    def amount_in_for(self, pair: TokenPair) -> int:
        """Trade amount in the base token's smallest unit."""
        return int(self.trade_amount * (Decimal(10) ** pair.decimals_a))


def _decimal(value: Any, field_name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ConfigurationError(f"{field_name} must be numeric, got {value!r}") from exc


def parse_dexes(entries: Sequence[Mapping[str, Any]]) -> tuple[DexConfig, ...]:
    dexes = []
    for entry in entries:
        try:
            dex_id = DexId.parse(entry['id'])
            kind = DexKind(entry['kind'])
            dexes.append(DexConfig(
                dex_id=dex_id,
                kind=kind,
                name=entry.get('name', dex_id.name.replace('_', ' ').title()),
                router=entry['router'],
                fee=_decimal(entry.get('fee', '0.003'), 'fee'),
                quoter=entry.get('quoter'),
                fee_tiers=tuple(int(tier) for tier in entry.get('fee_tiers', ())),
            ))
        except KeyError as exc:
            raise ConfigurationError(f"DEX entry missing or unknown field {exc}", details={"entry": dict(entry)}) from exc
        except ValueError as exc:
            raise ConfigurationError(f"Invalid DEX entry: {exc}", details={"entry": dict(entry)}) from exc
        if kind == DexKind.CONCENTRATED_LIQUIDITY and (not dexes[-1].fee_tiers or not dexes[-1].quoter):
            raise ConfigurationError(f"{dexes[-1].name} needs a quoter and at least one fee tier")
    if not dexes:
        raise ConfigurationError("At least one DEX must be configured")
    return tuple(dexes)


def _parse_bounds(raw: Optional[Mapping[str, Any]]) -> Optional[PriceBounds]:
    if not raw:
        return None
    bounds = PriceBounds(
        lower=_decimal(raw['lower'], 'price_bounds.lower'),
        upper=_decimal(raw['upper'], 'price_bounds.upper'),
        inclusive=bool(raw.get('inclusive', True)),
    )
    if bounds.lower > bounds.upper:
        raise ConfigurationError(f"price_bounds lower {bounds.lower} exceeds upper {bounds.upper}")
    return bounds


def _parse_pool(raw: Mapping[str, Any]) -> PoolRef:
    return PoolRef(
        pool_id=raw.get('pool_id'),
        address=raw.get('address'),
        i=int(raw.get('i', 0)),
        j=int(raw.get('j', 1)),
        base_is_token_a=bool(raw.get('base_is_token_a', True)),
    )


def parse_pairs(entries: Sequence[Mapping[str, Any]]) -> tuple[TokenPair, ...]:
    pairs = []
    for entry in entries:
        try:
            pairs.append(TokenPair(
                name=entry['name'],
                token_a=entry['token_a'],
                token_b=entry['token_b'],
                decimals_a=int(entry['decimals_a']),
                decimals_b=int(entry['decimals_b']),
                price_bounds=_parse_bounds(entry.get('price_bounds')),
                pools={DexId.parse(k): _parse_pool(v) for k, v in (entry.get('pools') or {}).items()},
                skip_fee_tiers={
                    DexId.parse(k): tuple(int(t) for t in v)
                    for k, v in (entry.get('skip_fee_tiers') or {}).items()
                },
            ))
        except KeyError as exc:
            raise ConfigurationError(f"Pair entry missing or unknown field {exc}", details={"entry": dict(entry)}) from exc
        except ValueError as exc:
            raise ConfigurationError(f"Invalid pair entry: {exc}", details={"entry": dict(entry)}) from exc
    if not pairs:
        raise ConfigurationError("At least one token pair must be configured")
    return tuple(pairs)


def load_markets(path: Optional[str]) -> tuple[tuple[DexConfig, ...], tuple[TokenPair, ...]]:
    """Reads DEX and pair tables from a YAML file, falling back to the built-in defaults."""
    data: Mapping[str, Any] = {}
    if path:
        markets_path = Path(path)
        if not markets_path.exists():
            raise ConfigurationError(f"Markets file not found: {markets_path}")
        with markets_path.open() as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"Markets file {markets_path} must contain a mapping")
    dexes = parse_dexes(data.get('dexes') or constants.DEFAULT_DEXES)
    pairs = parse_pairs(data.get('pairs') or constants.DEFAULT_PAIRS)
    return dexes, pairs


def _fail(message: str) -> None:
    print(f"{constants.C_RED}{message}{constants.C_RESET}")
    exit(1)


def load_config(argv: Optional[Sequence[str]] = None) -> AppConfig:
    """
    Parses command-line arguments and loads environment variables to create a configuration object.
    """
    load_dotenv()

    parser = argparse.ArgumentParser(
        description="Detect and execute two-leg cross-DEX arbitrage financed by a flash loan.",
        epilog="Example: ./main.py --auto-trade --min-profit-bps 80 --markets-file markets.yaml"
    )
    # --- Market Arguments ---
    parser.add_argument('--markets-file', type=str, help='YAML file with "dexes" and "pairs" tables (default: built-in mainnet set).')
    parser.add_argument('--trade-amount', type=str, default=constants.DEFAULT_TRADE_AMOUNT, help='Base tokens borrowed per opportunity (default: 1).')

    # --- Profitability Arguments ---
    parser.add_argument('--min-profit-bps', type=int, default=constants.MIN_PROFIT_BPS, help='Minimum expected profit in basis points to execute (default: 80).')
    parser.add_argument('--slippage', type=float, default=constants.SLIPPAGE_TOLERANCE_PCT, help='Slippage tolerance percentage applied to both legs (default: 3.0).')
    parser.add_argument('--flash-loan-premium-bps', type=int, default=constants.FLASH_LOAN_PREMIUM_BPS, help='Flash-loan premium in basis points (default: 9).')
    parser.add_argument('--leg2-buffer', type=int, default=constants.LEG2_INPUT_BUFFER_PCT, help='Percentage withheld from the leg-2 input (default: 5).')

    # --- Submission Arguments ---
    parser.add_argument('--gas-buffer', type=int, default=constants.GAS_LIMIT_BUFFER_PCT, help='Percentage added to the gas estimate (default: 20).')
    parser.add_argument('--fallback-gas-limit', type=int, default=constants.FALLBACK_GAS_LIMIT, help='Fixed gas limit used when estimation fails (default: 3000000).')
    parser.add_argument('--receipt-timeout', type=int, default=constants.RECEIPT_TIMEOUT_SECONDS, help='Seconds to wait for a receipt (default: 180).')
    parser.add_argument('--auto-trade', action='store_true', help='Execute opportunities above the threshold; otherwise only report them.')

    # --- Scheduling Arguments ---
    parser.add_argument('--interval', type=int, default=constants.POLL_INTERVAL_SECONDS, help='Seconds to wait between scans (default: 5).')
    parser.add_argument('--error-backoff', type=int, default=constants.ERROR_BACKOFF_SECONDS, help='Seconds to wait after a failed scan (default: 10).')

    # --- Reporting Arguments ---
    parser.add_argument('--telegram-enabled', action='store_true', help='Enable Telegram notifications and commands.')
    parser.add_argument('--db-path', type=str, default=constants.DEFAULT_DB_PATH, help='SQLite database for scan and execution history.')
    parser.add_argument('--log-level', type=str, default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Logging level (default: INFO).')
    parser.add_argument('--show-executions', action='store_true', help='Display recent execution records and exit.')
    parser.add_argument('--executions-limit', type=int, default=10, help='Number of execution records to display (default: 10).')
    parser.add_argument('--executions-pair', type=str, help='Filter execution records by pair name, e.g. WETH/USDC.')

    # --- One-off Actions ---
    parser.add_argument('--check-connection', action='store_true', help='Print chain, block and wallet balance, then exit.')
    parser.add_argument('--approve', action='store_true', help='Approve the arbitrage contract to spend each base token, then exit.')

    args = parser.parse_args(argv)

    # Load from environment
    rpc_url = os.environ.get(constants.RPC_URL_ENV_VAR)
    private_key = os.environ.get(constants.PRIVATE_KEY_ENV_VAR)
    contract_address = os.environ.get(constants.ARBITRAGE_CONTRACT_ENV_VAR)
    profit_recipient = os.environ.get(constants.PROFIT_RECIPIENT_ENV_VAR)
    telegram_bot_token = os.environ.get(constants.TELEGRAM_BOT_TOKEN_ENV_VAR)
    telegram_chat_id = os.environ.get(constants.TELEGRAM_CHAT_ID_ENV_VAR)

    if not args.show_executions:
        missing = [
            name for name, value in (
                (constants.RPC_URL_ENV_VAR, rpc_url),
                (constants.PRIVATE_KEY_ENV_VAR, private_key),
                (constants.ARBITRAGE_CONTRACT_ENV_VAR, contract_address),
            ) if not value
        ]
        if missing:
            _fail(f"Missing required environment variables: {', '.join(missing)}")

    if args.telegram_enabled and not (telegram_bot_token and telegram_chat_id):
        _fail(f"Telegram is enabled, but {constants.TELEGRAM_BOT_TOKEN_ENV_VAR} or {constants.TELEGRAM_CHAT_ID_ENV_VAR} are not set.")

    if not 0 <= args.slippage < 100:
        _fail("--slippage must be between 0 and 100.")
    if not 0 <= args.leg2_buffer < 100:
        _fail("--leg2-buffer must be between 0 and 100.")
    if args.interval <= 0 or args.error_backoff <= 0:
        _fail("--interval and --error-backoff must be positive.")

    try:
        trade_amount = _decimal(args.trade_amount, '--trade-amount')
        if trade_amount <= 0:
            raise ConfigurationError("--trade-amount must be positive")
        dexes, pairs = load_markets(args.markets_file)
    except ConfigurationError as exc:
        _fail(f"Configuration error: {exc}")

    return AppConfig(
        rpc_url=rpc_url,
        private_key=private_key,
        arbitrage_contract_address=contract_address,
        profit_recipient=profit_recipient,
        dexes=dexes,
        pairs=pairs,
        trade_amount=trade_amount,
        min_profit_bps=args.min_profit_bps,
        slippage=args.slippage,
        flash_loan_premium_bps=args.flash_loan_premium_bps,
        leg2_buffer=args.leg2_buffer,
        gas_buffer=args.gas_buffer,
        fallback_gas_limit=args.fallback_gas_limit,
        interval=args.interval,
        error_backoff=args.error_backoff,
        receipt_timeout=args.receipt_timeout,
        auto_trade=args.auto_trade,
        telegram_enabled=args.telegram_enabled,
        telegram_bot_token=telegram_bot_token,
        telegram_chat_id=telegram_chat_id,
        db_path=args.db_path,
        log_level=args.log_level,
        show_executions=args.show_executions,
        executions_limit=args.executions_limit,
        executions_pair=args.executions_pair,
        check_connection=args.check_connection,
        approve=args.approve,
    )
