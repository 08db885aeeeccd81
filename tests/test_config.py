from decimal import Decimal

import pytest

import config
from analysis.models import DexId, DexKind
from config import load_config, load_markets, parse_dexes, parse_pairs
from exceptions import ConfigurationError

REQUIRED_ENV = {
    'RPC_URL': 'http://localhost:8545',
    'PRIVATE_KEY': '0x' + '11' * 32,
    'ARBITRAGE_CONTRACT_ADDRESS': '0x' + '22' * 20,
}


@pytest.fixture(autouse=True)
def setup_env(monkeypatch):
    monkeypatch.setattr(config, 'load_dotenv', lambda: None)
    for name in ('PROFIT_RECIPIENT', 'TELEGRAM_BOT_TOKEN', 'TELEGRAM_CHAT_ID'):
        monkeypatch.delenv(name, raising=False)
    for name, value in REQUIRED_ENV.items():
        monkeypatch.setenv(name, value)


def test_defaults(monkeypatch):
    cfg = load_config([])
    assert cfg.rpc_url == 'http://localhost:8545'
    assert cfg.trade_amount == Decimal('1')
    assert cfg.min_profit_bps == 80
    assert cfg.slippage == 3.0
    assert cfg.flash_loan_premium_bps == 9
    assert cfg.leg2_buffer == 5
    assert cfg.gas_buffer == 20
    assert cfg.fallback_gas_limit == 3_000_000
    assert cfg.interval == 5
    assert cfg.error_backoff == 10
    assert cfg.auto_trade is False
    assert cfg.profit_recipient is None
    assert [pair.name for pair in cfg.pairs] == ['WETH/WBTC', 'WETH/USDC', 'WETH/DAI']
    assert [dex.dex_id for dex in cfg.dexes][:2] == [DexId.UNISWAP_V2, DexId.UNISWAP_V3]


def test_overrides_from_arguments():
    cfg = load_config([
        '--trade-amount', '2.5',
        '--min-profit-bps', '120',
        '--slippage', '0.5',
        '--leg2-buffer', '0',
        '--interval', '12',
        '--auto-trade',
    ])
    assert cfg.trade_amount == Decimal('2.5')
    assert cfg.min_profit_bps == 120
    assert cfg.slippage == 0.5
    assert cfg.leg2_buffer == 0
    assert cfg.interval == 12
    assert cfg.auto_trade is True


def test_amount_in_uses_base_token_decimals():
    cfg = load_config(['--trade-amount', '0.5'])
    weth_usdc = next(pair for pair in cfg.pairs if pair.name == 'WETH/USDC')
    assert cfg.amount_in_for(weth_usdc) == 5 * 10**17


@pytest.mark.parametrize('missing', sorted(REQUIRED_ENV))
def test_missing_required_environment_exits(monkeypatch, capsys, missing):
    monkeypatch.delenv(missing)
    with pytest.raises(SystemExit):
        load_config([])
    assert missing in capsys.readouterr().out


def test_history_lookup_does_not_need_credentials(monkeypatch):
    for name in REQUIRED_ENV:
        monkeypatch.delenv(name)
    cfg = load_config(['--show-executions', '--executions-pair', 'WETH/USDC'])
    assert cfg.show_executions is True
    assert cfg.executions_pair == 'WETH/USDC'


def test_telegram_requires_token_and_chat():
    with pytest.raises(SystemExit):
        load_config(['--telegram-enabled'])


def test_invalid_slippage_exits():
    with pytest.raises(SystemExit):
        load_config(['--slippage', '100'])


def test_markets_file_replaces_defaults(tmp_path):
    markets = tmp_path / 'markets.yaml'
    markets.write_text(
        """
dexes:
  - id: uniswap_v2
    kind: constant_product
    router: "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D"
  - id: curve
    kind: stable_swap
    router: "0x0000000000000000000000000000000000000001"
    fee: "0.0004"
pairs:
  - name: WETH/USDC
    token_a: "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
    token_b: "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
    decimals_a: 18
    decimals_b: 6
    price_bounds: {lower: 100, upper: 5000, inclusive: false}
    pools:
      curve: {address: "0x0000000000000000000000000000000000000002", i: 2, j: 0}
"""
    )

    cfg = load_config(['--markets-file', str(markets)])

    assert [dex.kind for dex in cfg.dexes] == [DexKind.CONSTANT_PRODUCT, DexKind.STABLE_SWAP]
    assert cfg.dexes[1].fee == Decimal('0.0004')
    pair = cfg.pairs[0]
    assert pair.price_bounds.inclusive is False
    assert pair.pool_for(DexId.CURVE).i == 2


def test_missing_markets_file_is_a_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError):
        load_markets(str(tmp_path / 'absent.yaml'))


def test_concentrated_liquidity_needs_quoter_and_tiers():
    with pytest.raises(ConfigurationError):
        parse_dexes([{'id': 'uniswap_v3', 'kind': 'concentrated_liquidity', 'router': '0x1'}])


def test_unknown_dex_is_rejected():
    with pytest.raises(ConfigurationError):
        parse_dexes([{'id': 'pancakeswap', 'kind': 'constant_product', 'router': '0x1'}])


def test_inverted_bounds_are_rejected():
    with pytest.raises(ConfigurationError):
        parse_pairs([{
            'name': 'WETH/USDC',
            'token_a': '0xa',
            'token_b': '0xb',
            'decimals_a': 18,
            'decimals_b': 6,
            'price_bounds': {'lower': 5000, 'upper': 100},
        }])
