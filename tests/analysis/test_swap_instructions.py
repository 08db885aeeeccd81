from decimal import Decimal

import pytest
from eth_abi import decode

from analysis.models import DexConfig, DexId, DexKind, PoolRef, TokenPair
from analysis.swap_instructions import (
    ConcentratedLiquiditySwap,
    ConstantProductSwap,
    ProactiveMarketMakerSwap,
    StableSwapSwap,
    WeightedPoolSwap,
    build_swap_instruction,
)

WETH = '0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2'
USDC = '0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48'
POOL_ID = '0x' + '32' * 32
CURVE_POOL = '0x' + '44' * 20
DODO_POOL = '0x' + '55' * 20


def _dex(dex_id, kind):
    return DexConfig(dex_id=dex_id, kind=kind, name=dex_id.name, router='0x' + '11' * 20, fee=Decimal('0.003'))


@pytest.fixture
def pooled_pair():
    return TokenPair(
        name='WETH/USDC',
        token_a=WETH,
        token_b=USDC,
        decimals_a=18,
        decimals_b=6,
        pools={
            DexId.BALANCER: PoolRef(pool_id=POOL_ID),
            DexId.CURVE: PoolRef(address=CURVE_POOL, i=2, j=0),
            DexId.DODO: PoolRef(address=DODO_POOL, base_is_token_a=True),
        },
    )


def test_constant_product_leaves_venue_slots_empty(uniswap_v2, pooled_pair):
    leg = build_swap_instruction(uniswap_v2, pooled_pair, WETH, USDC, 10**18, 1900 * 10**6)
    assert isinstance(leg, ConstantProductSwap)
    assert leg.path == (WETH, USDC)
    assert leg.as_contract_tuple() == (0, WETH, USDC, 10**18, 1900 * 10**6, b'\x00' * 32, 0, 0, 0, b'')


def test_concentrated_liquidity_carries_fee_tier(uniswap_v3, pooled_pair):
    leg = build_swap_instruction(uniswap_v3, pooled_pair, USDC, WETH, 1900 * 10**6, 10**18, fee_tier=500)
    assert isinstance(leg, ConcentratedLiquiditySwap)
    params = leg.as_contract_tuple()
    assert params[0] == 1
    assert params[6] == 500


def test_concentrated_liquidity_defaults_to_standard_tier(uniswap_v3, pooled_pair):
    leg = build_swap_instruction(uniswap_v3, pooled_pair, WETH, USDC, 10**18, 1)
    assert leg.fee_tier == 3000


def test_weighted_pool_encodes_pool_id(pooled_pair):
    leg = build_swap_instruction(_dex(DexId.BALANCER, DexKind.WEIGHTED_POOL), pooled_pair, WETH, USDC, 10**18, 1)
    assert isinstance(leg, WeightedPoolSwap)
    assert leg.as_contract_tuple()[5] == bytes.fromhex('32' * 32)


def test_stable_swap_reverses_indices_for_return_leg(pooled_pair):
    curve = _dex(DexId.CURVE, DexKind.STABLE_SWAP)
    forward = build_swap_instruction(curve, pooled_pair, WETH, USDC, 10**18, 1)
    back = build_swap_instruction(curve, pooled_pair, USDC, WETH, 10**6, 1)
    assert isinstance(forward, StableSwapSwap)
    assert (forward.i, forward.j) == (2, 0)
    assert (back.i, back.j) == (0, 2)
    params = forward.as_contract_tuple()
    assert params[7:9] == (2, 0)
    assert decode(['address'], params[9])[0].lower() == CURVE_POOL


def test_proactive_market_maker_encodes_direction(pooled_pair):
    dodo = _dex(DexId.DODO, DexKind.PROACTIVE_MARKET_MAKER)
    sell_base = build_swap_instruction(dodo, pooled_pair, WETH, USDC, 10**18, 1)
    sell_quote = build_swap_instruction(dodo, pooled_pair, USDC, WETH, 10**6, 1)
    assert isinstance(sell_base, ProactiveMarketMakerSwap)
    assert decode(['address', 'bool'], sell_base.extra_data)[1] is True
    assert decode(['address', 'bool'], sell_quote.extra_data)[1] is False


def test_pool_venue_without_pool_config_is_rejected(weth_usdc):
    with pytest.raises(ValueError):
        build_swap_instruction(_dex(DexId.CURVE, DexKind.STABLE_SWAP), weth_usdc, WETH, USDC, 10**18, 1)
