from decimal import Decimal

import pytest

from analysis.models import PriceBounds, TokenPair
from analysis.price_filter import PriceSanityFilter, implied_rate


@pytest.fixture
def price_filter():
    return PriceSanityFilter()


def test_implied_rate_adjusts_for_decimals(weth_usdc, uniswap_v2, make_quote):
    quote = make_quote(uniswap_v2, 1800 * 10**6)
    assert implied_rate(weth_usdc, quote) == Decimal('1800')


def test_rate_below_lower_bound_is_rejected(price_filter, weth_usdc, uniswap_v2, make_quote):
    assert price_filter.is_valid(weth_usdc, make_quote(uniswap_v2, 50 * 10**6)) is False


def test_rate_inside_bounds_is_accepted(price_filter, weth_usdc, uniswap_v2, make_quote):
    assert price_filter.is_valid(weth_usdc, make_quote(uniswap_v2, 1800 * 10**6)) is True


def test_rate_above_upper_bound_is_rejected(price_filter, weth_dai, uniswap_v2, make_quote):
    assert price_filter.is_valid(weth_dai, make_quote(uniswap_v2, 5001 * 10**18)) is False


@pytest.mark.parametrize("rate", [100, 5000])
def test_inclusive_bounds_accept_rates_on_the_bound(price_filter, weth_usdc, uniswap_v2, make_quote, rate):
    assert price_filter.is_valid(weth_usdc, make_quote(uniswap_v2, rate * 10**6)) is True


@pytest.mark.parametrize("rate", [100, 5000])
def test_exclusive_bounds_reject_rates_on_the_bound(price_filter, weth_usdc, uniswap_v2, make_quote, rate):
    exclusive = TokenPair(
        name=weth_usdc.name,
        token_a=weth_usdc.token_a,
        token_b=weth_usdc.token_b,
        decimals_a=18,
        decimals_b=6,
        price_bounds=PriceBounds(lower=Decimal('100'), upper=Decimal('5000'), inclusive=False),
    )
    assert price_filter.is_valid(exclusive, make_quote(uniswap_v2, rate * 10**6)) is False


def test_pair_without_bounds_passes_any_positive_quote(price_filter, uniswap_v2, make_quote):
    pair = TokenPair(name='WETH/WBTC', token_a='0xa', token_b='0xb', decimals_a=18, decimals_b=8)
    assert price_filter.is_valid(pair, make_quote(uniswap_v2, 1)) is True


def test_zero_output_is_always_invalid(price_filter, uniswap_v2, make_quote):
    pair = TokenPair(name='WETH/WBTC', token_a='0xa', token_b='0xb', decimals_a=18, decimals_b=8)
    assert price_filter.is_valid(pair, make_quote(uniswap_v2, 0)) is False


def test_rejection_is_logged(price_filter, weth_usdc, uniswap_v2, make_quote, caplog):
    with caplog.at_level("WARNING"):
        price_filter.is_valid(weth_usdc, make_quote(uniswap_v2, 50 * 10**6))
    assert any(getattr(record, "event", None) == "price_rejected" for record in caplog.records)


def test_filter_keeps_order_of_valid_quotes(price_filter, weth_usdc, uniswap_v2, sushiswap, make_quote):
    good_a = make_quote(uniswap_v2, 1800 * 10**6)
    bad = make_quote(sushiswap, 50 * 10**6)
    good_b = make_quote(sushiswap, 1810 * 10**6)
    assert price_filter.filter(weth_usdc, [good_a, bad, good_b]) == [good_a, good_b]
