#!/usr/bin/env python3
from typing import Any, Dict, List

# --- ANSI Color Codes ---
C_GREEN = '\033[92m'
C_RED = '\033[91m'
C_YELLOW = '\033[93m'
C_BLUE = '\033[94m'
C_RESET = '\033[0m'

# --- Environment Variable Names ---
RPC_URL_ENV_VAR = 'RPC_URL'
PRIVATE_KEY_ENV_VAR = 'PRIVATE_KEY'
ARBITRAGE_CONTRACT_ENV_VAR = 'ARBITRAGE_CONTRACT_ADDRESS'
PROFIT_RECIPIENT_ENV_VAR = 'PROFIT_RECIPIENT'
TELEGRAM_BOT_TOKEN_ENV_VAR = 'TELEGRAM_BOT_TOKEN'
TELEGRAM_CHAT_ID_ENV_VAR = 'TELEGRAM_CHAT_ID'

# --- Trading Parameters ---
DEFAULT_TRADE_AMOUNT = '1'  # whole base tokens borrowed per opportunity
MIN_PROFIT_BPS = 80
SLIPPAGE_TOLERANCE_PCT = 3.0
FLASH_LOAN_PREMIUM_BPS = 9  # Aave V3: 0.09%
LEG2_INPUT_BUFFER_PCT = 5
GAS_LIMIT_BUFFER_PCT = 20
FALLBACK_GAS_LIMIT = 3_000_000
RECEIPT_TIMEOUT_SECONDS = 180

# --- Scheduling ---
POLL_INTERVAL_SECONDS = 5
ERROR_BACKOFF_SECONDS = 10

# --- Storage ---
DEFAULT_DB_PATH = 'data/arbitrage_history.db'

MAX_UINT256 = 2**256 - 1
ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'
ZERO_BYTES32 = b'\x00' * 32

# --- DEX Configuration ---
# Order matters: quotes are collected in this order and ties keep the first seen route.
DEFAULT_DEXES: List[Dict[str, Any]] = [
    {
        'id': 'uniswap_v2',
        'name': 'Uniswap V2',
        'kind': 'constant_product',
        'router': '0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D',
        'fee': '0.003',
    },
    {
        'id': 'uniswap_v3',
        'name': 'Uniswap V3',
        'kind': 'concentrated_liquidity',
        'router': '0xE592427A0AEce92De3Edee1F18E0157C05861564',
        'quoter': '0xb27308f9F90D607463bb33eA1BeBb41C27CE5AB6',
        'fee': '0.003',
        'fee_tiers': [100, 500, 3000, 10000],
    },
    {
        'id': 'sushiswap',
        'name': 'Sushiswap',
        'kind': 'constant_product',
        'router': '0xd9e1cE17f2641f24aE83637ab66a2cca9C378B9F',
        'fee': '0.003',
    },
    {
        'id': 'balancer',
        'name': 'Balancer',
        'kind': 'weighted_pool',
        'router': '0xBA12222222228d8Ba445958a75a0704d566BF2C8',
        'fee': '0.003',
    },
]

# --- Token Pairs ---
# token_a is the borrowed base asset; price bounds are token_b per one token_a.
DEFAULT_PAIRS: List[Dict[str, Any]] = [
    {
        'name': 'WETH/WBTC',
        'token_a': '0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2',
        'token_b': '0x2260FAC5E5542a773aa44fBCfeDf7C193bc2C599',
        'decimals_a': 18,
        'decimals_b': 8,
    },
    {
        'name': 'WETH/USDC',
        'token_a': '0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2',
        'token_b': '0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48',
        'decimals_a': 18,
        'decimals_b': 6,
        'price_bounds': {'lower': '100', 'upper': '5000'},
    },
    {
        'name': 'WETH/DAI',
        'token_a': '0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2',
        'token_b': '0x6B175474E89094C44Da98b954EedeAC495271d0F',
        'decimals_a': 18,
        'decimals_b': 18,
        'price_bounds': {'lower': '100', 'upper': '5000'},
        'skip_fee_tiers': {'uniswap_v3': [100]},
    },
]
