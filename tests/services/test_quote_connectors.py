from decimal import Decimal
from types import SimpleNamespace

import pytest

from analysis.models import DexConfig, DexId, DexKind, PoolRef, TokenPair
from exceptions import LedgerTransportError, RevertError
from services.quote_connectors import (
    ConcentratedLiquidityConnector,
    ConstantProductConnector,
    ProactiveMarketMakerConnector,
    QuoteService,
    StableSwapConnector,
    WeightedPoolConnector,
)

WETH = '0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2'
USDC = '0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48'


class FakeLedger:
    """Answers contract calls from a table keyed by function name."""

    address = None

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def checksum(self, address):
        return address

    def contract(self, address, abi):
        class _Functions:
            def __getattr__(self, name):
                return lambda *args: (address, name, args)
        return SimpleNamespace(functions=_Functions())

    async def call(self, contract_function):
        self.calls.append(contract_function)
        _address, name, args = contract_function
        response = self.responses[name]
        result = response(*args) if callable(response) else response
        if isinstance(result, Exception):
            raise result
        return result


def _dex(dex_id, kind):
    return DexConfig(dex_id=dex_id, kind=kind, name=dex_id.name.title(), router='0xvault', fee=Decimal('0.003'))


@pytest.mark.asyncio
async def test_constant_product_returns_last_amount(uniswap_v2, weth_usdc):
    ledger = FakeLedger({'getAmountsOut': [10**18, 1995 * 10**6]})
    amount = await ConstantProductConnector(ledger).quote(uniswap_v2, weth_usdc, WETH, USDC, 10**18)
    assert amount == 1995 * 10**6
    assert ledger.calls[0][2] == (10**18, [WETH, USDC])


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [RevertError("no pair"), LedgerTransportError("timeout"), [10**18, 0]])
async def test_constant_product_failures_mean_unavailable(uniswap_v2, weth_usdc, response):
    ledger = FakeLedger({'getAmountsOut': response})
    assert await ConstantProductConnector(ledger).quote(uniswap_v2, weth_usdc, WETH, USDC, 10**18) is None


@pytest.mark.asyncio
async def test_concentrated_liquidity_requires_fee_tier(uniswap_v3, weth_usdc):
    ledger = FakeLedger({'quoteExactInputSingle': 1990 * 10**6})
    connector = ConcentratedLiquidityConnector(ledger)
    assert await connector.quote(uniswap_v3, weth_usdc, WETH, USDC, 10**18) is None
    assert await connector.quote(uniswap_v3, weth_usdc, WETH, USDC, 10**18, 500) == 1990 * 10**6
    assert ledger.calls[0][2] == (WETH, USDC, 500, 10**18, 0)


def test_concentrated_liquidity_skips_excluded_tiers(uniswap_v3, weth_dai, weth_usdc):
    connector = ConcentratedLiquidityConnector(FakeLedger({}))
    assert connector.fee_tiers(uniswap_v3, weth_dai) == [500, 3000, 10000]
    assert connector.fee_tiers(uniswap_v3, weth_usdc) == [100, 500, 3000, 10000]


@pytest.mark.asyncio
async def test_weighted_pool_negates_vault_delta(weth_usdc):
    balancer = _dex(DexId.BALANCER, DexKind.WEIGHTED_POOL)
    pair = TokenPair(
        name=weth_usdc.name, token_a=WETH, token_b=USDC, decimals_a=18, decimals_b=6,
        pools={DexId.BALANCER: PoolRef(pool_id='0x' + 'ab' * 32)},
    )
    ledger = FakeLedger({'queryBatchSwap': [10**18, -1998 * 10**6]})

    amount = await WeightedPoolConnector(ledger).quote(balancer, pair, WETH, USDC, 10**18)

    assert amount == 1998 * 10**6
    kind, swaps, assets, _funds = ledger.calls[0][2]
    assert kind == 0
    assert swaps[0][0] == bytes.fromhex('ab' * 32)
    assert assets == [WETH, USDC]


@pytest.mark.asyncio
async def test_pool_venues_without_pool_config_are_unavailable(weth_usdc):
    ledger = FakeLedger({})
    for connector, dex in (
        (WeightedPoolConnector(ledger), _dex(DexId.BALANCER, DexKind.WEIGHTED_POOL)),
        (StableSwapConnector(ledger), _dex(DexId.CURVE, DexKind.STABLE_SWAP)),
        (ProactiveMarketMakerConnector(ledger), _dex(DexId.DODO, DexKind.PROACTIVE_MARKET_MAKER)),
    ):
        assert await connector.quote(dex, weth_usdc, WETH, USDC, 10**18) is None
    assert ledger.calls == []


@pytest.mark.asyncio
async def test_stable_swap_swaps_indices_for_reverse_direction():
    curve = _dex(DexId.CURVE, DexKind.STABLE_SWAP)
    pair = TokenPair(
        name='WETH/USDC', token_a=WETH, token_b=USDC, decimals_a=18, decimals_b=6,
        pools={DexId.CURVE: PoolRef(address='0xcurve', i=1, j=2)},
    )
    ledger = FakeLedger({'get_dy': lambda i, j, dx: dx * 2})
    connector = StableSwapConnector(ledger)

    assert await connector.quote(curve, pair, WETH, USDC, 10) == 20
    assert await connector.quote(curve, pair, USDC, WETH, 10) == 20
    assert ledger.calls[0][2] == (1, 2, 10)
    assert ledger.calls[1][2] == (2, 1, 10)


@pytest.mark.asyncio
async def test_proactive_market_maker_picks_side_from_base_token():
    dodo = _dex(DexId.DODO, DexKind.PROACTIVE_MARKET_MAKER)
    pair = TokenPair(
        name='WETH/USDC', token_a=WETH, token_b=USDC, decimals_a=18, decimals_b=6,
        pools={DexId.DODO: PoolRef(address='0xdodo', base_is_token_a=True)},
    )
    ledger = FakeLedger({
        'querySellBase': (2000 * 10**6, 10),
        'querySellQuote': (5 * 10**17, 10),
    })
    connector = ProactiveMarketMakerConnector(ledger)

    assert await connector.quote(dodo, pair, WETH, USDC, 10**18) == 2000 * 10**6
    assert await connector.quote(dodo, pair, USDC, WETH, 1000 * 10**6) == 5 * 10**17
    assert [call[1] for call in ledger.calls] == ['querySellBase', 'querySellQuote']


@pytest.mark.asyncio
async def test_collect_walks_dexes_then_tiers_in_order(uniswap_v2, uniswap_v3, sushiswap, weth_usdc):
    def v3_quote(token_in, token_out, fee, amount_in, limit):
        if fee == 500:
            return RevertError("pool not initialised")
        return 1990 * 10**6 + fee

    ledger = FakeLedger({
        'getAmountsOut': lambda amount_in, path: [amount_in, 2000 * 10**6],
        'quoteExactInputSingle': v3_quote,
    })
    service = QuoteService.for_ledger(ledger, [uniswap_v2, uniswap_v3, sushiswap])

    quotes = await service.collect(weth_usdc, 10**18)

    assert [quote.key for quote in quotes] == [
        (DexId.UNISWAP_V2, None),
        (DexId.UNISWAP_V3, 100),
        (DexId.UNISWAP_V3, 3000),
        (DexId.UNISWAP_V3, 10000),
        (DexId.SUSHISWAP, None),
    ]
    assert quotes[1].amount_out == 1990 * 10**6 + 100
    assert all(quote.amount_in == 10**18 for quote in quotes)


def test_only_concentrated_liquidity_quotes_in_reverse(uniswap_v2, uniswap_v3):
    service = QuoteService.for_ledger(FakeLedger({}), [uniswap_v2, uniswap_v3])
    assert service.supports_live_reverse(uniswap_v3) is True
    assert service.supports_live_reverse(uniswap_v2) is False
    assert service.dex(DexId.UNISWAP_V3) is uniswap_v3
