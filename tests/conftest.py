from decimal import Decimal

import pytest

from analysis.models import DexConfig, DexId, DexKind, PriceBounds, Quote, TokenPair
from config import AppConfig

WETH = '0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2'
USDC = '0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48'
DAI = '0x6B175474E89094C44Da98b954EedeAC495271d0F'


@pytest.fixture
def uniswap_v2():
    return DexConfig(
        dex_id=DexId.UNISWAP_V2,
        kind=DexKind.CONSTANT_PRODUCT,
        name='Uniswap V2',
        router='0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D',
        fee=Decimal('0.003'),
    )


@pytest.fixture
def sushiswap():
    return DexConfig(
        dex_id=DexId.SUSHISWAP,
        kind=DexKind.CONSTANT_PRODUCT,
        name='Sushiswap',
        router='0xd9e1cE17f2641f24aE83637ab66a2cca9C378B9F',
        fee=Decimal('0.003'),
    )


@pytest.fixture
def uniswap_v3():
    return DexConfig(
        dex_id=DexId.UNISWAP_V3,
        kind=DexKind.CONCENTRATED_LIQUIDITY,
        name='Uniswap V3',
        router='0xE592427A0AEce92De3Edee1F18E0157C05861564',
        quoter='0xb27308f9F90D607463bb33eA1BeBb41C27CE5AB6',
        fee=Decimal('0.003'),
        fee_tiers=(100, 500, 3000, 10000),
    )


@pytest.fixture
def weth_usdc():
    return TokenPair(
        name='WETH/USDC',
        token_a=WETH,
        token_b=USDC,
        decimals_a=18,
        decimals_b=6,
        price_bounds=PriceBounds(lower=Decimal('100'), upper=Decimal('5000')),
    )


@pytest.fixture
def weth_dai():
    return TokenPair(
        name='WETH/DAI',
        token_a=WETH,
        token_b=DAI,
        decimals_a=18,
        decimals_b=18,
        price_bounds=PriceBounds(lower=Decimal('100'), upper=Decimal('5000')),
        skip_fee_tiers={DexId.UNISWAP_V3: (100,)},
    )


@pytest.fixture
def make_quote():
    def _make(dex, amount_out, amount_in=10**18, fee_tier=None):
        return Quote(dex=dex, amount_in=amount_in, amount_out=amount_out, fee_tier=fee_tier)
    return _make


@pytest.fixture
def make_config(tmp_path):
    def _make(dexes, pairs, **overrides):
        values = dict(
            rpc_url=None,
            private_key=None,
            arbitrage_contract_address=None,
            profit_recipient=None,
            dexes=tuple(dexes),
            pairs=tuple(pairs),
            trade_amount=Decimal('1'),
            min_profit_bps=80,
            slippage=0.5,
            flash_loan_premium_bps=9,
            leg2_buffer=0,
            gas_buffer=20,
            fallback_gas_limit=3_000_000,
            interval=5,
            error_backoff=10,
            receipt_timeout=180,
            auto_trade=False,
            telegram_enabled=False,
            telegram_bot_token=None,
            telegram_chat_id=None,
            db_path=str(tmp_path / 'history.db'),
            log_level='INFO',
            show_executions=False,
            executions_limit=10,
            executions_pair=None,
            check_connection=False,
            approve=False,
        )
        values.update(overrides)
        return AppConfig(**values)
    return _make
