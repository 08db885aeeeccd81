"""Read-only quote connectors, one per DEX pricing model."""
from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional, Sequence

from analysis.models import DexConfig, DexId, DexKind, Quote, TokenPair
from constants import ZERO_ADDRESS
from exceptions import LedgerError

logger = logging.getLogger(__name__)

UNISWAP_V2_ROUTER_ABI = [
    {
        "inputs": [
            {"name": "amountIn", "type": "uint256"},
            {"name": "path", "type": "address[]"},
        ],
        "name": "getAmountsOut",
        "outputs": [{"name": "amounts", "type": "uint256[]"}],
        "stateMutability": "view",
        "type": "function",
    }
]

UNISWAP_V3_QUOTER_ABI = [
    {
        "inputs": [
            {"name": "tokenIn", "type": "address"},
            {"name": "tokenOut", "type": "address"},
            {"name": "fee", "type": "uint24"},
            {"name": "amountIn", "type": "uint256"},
            {"name": "sqrtPriceLimitX96", "type": "uint160"},
        ],
        "name": "quoteExactInputSingle",
        "outputs": [{"name": "amountOut", "type": "uint256"}],
        "stateMutability": "nonpayable",
        "type": "function",
    }
]

BALANCER_VAULT_ABI = [
    {
        "inputs": [
            {"name": "kind", "type": "uint8"},
            {
                "name": "swaps",
                "type": "tuple[]",
                "components": [
                    {"name": "poolId", "type": "bytes32"},
                    {"name": "assetInIndex", "type": "uint256"},
                    {"name": "assetOutIndex", "type": "uint256"},
                    {"name": "amount", "type": "uint256"},
                    {"name": "userData", "type": "bytes"},
                ],
            },
            {"name": "assets", "type": "address[]"},
            {
                "name": "funds",
                "type": "tuple",
                "components": [
                    {"name": "sender", "type": "address"},
                    {"name": "fromInternalBalance", "type": "bool"},
                    {"name": "recipient", "type": "address"},
                    {"name": "toInternalBalance", "type": "bool"},
                ],
            },
        ],
        "name": "queryBatchSwap",
        "outputs": [{"name": "", "type": "int256[]"}],
        "stateMutability": "nonpayable",
        "type": "function",
    }
]

CURVE_POOL_ABI = [
    {
        "inputs": [
            {"name": "i", "type": "int128"},
            {"name": "j", "type": "int128"},
            {"name": "dx", "type": "uint256"},
        ],
        "name": "get_dy",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    }
]

DODO_POOL_ABI = [
    {
        "inputs": [
            {"name": "trader", "type": "address"},
            {"name": "payBaseAmount", "type": "uint256"},
        ],
        "name": "querySellBase",
        "outputs": [
            {"name": "receiveQuoteAmount", "type": "uint256"},
            {"name": "mtFee", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "trader", "type": "address"},
            {"name": "payQuoteAmount", "type": "uint256"},
        ],
        "name": "querySellQuote",
        "outputs": [
            {"name": "receiveBaseAmount", "type": "uint256"},
            {"name": "mtFee", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
]

BALANCER_GIVEN_IN = 0


class QuoteConnector:
    """
    Base class for venue quoting.

    `quote` never raises: reverts, missing pools and transport failures all
    mean "no liquidity" and come back as None.
    """

    kind: DexKind
    live_reverse_quotes = False

    def __init__(self, ledger) -> None:
        self.ledger = ledger

    def fee_tiers(self, dex: DexConfig, pair: TokenPair) -> list[Optional[int]]:
        return [None]

    async def quote(
        self,
        dex: DexConfig,
        pair: TokenPair,
        token_in: str,
        token_out: str,
        amount_in: int,
        fee_tier: Optional[int] = None,
    ) -> Optional[int]:
        try:
            amount_out = await self._quote(dex, pair, token_in, token_out, amount_in, fee_tier)
        except (LedgerError, ValueError, TypeError, IndexError) as exc:
            logger.debug("%s quote failed for %s: %s", dex.label(fee_tier), pair.name, exc)
            return None
        if not amount_out or amount_out <= 0:
            return None
        return int(amount_out)

    async def _quote(self, dex, pair, token_in, token_out, amount_in, fee_tier) -> Optional[int]:
        raise NotImplementedError


class ConstantProductConnector(QuoteConnector):
    kind = DexKind.CONSTANT_PRODUCT

    async def _quote(self, dex, pair, token_in, token_out, amount_in, fee_tier):
        router = self.ledger.contract(dex.router, UNISWAP_V2_ROUTER_ABI)
        path = [self.ledger.checksum(token_in), self.ledger.checksum(token_out)]
        amounts = await self.ledger.call(router.functions.getAmountsOut(amount_in, path))
        return amounts[-1]


class ConcentratedLiquidityConnector(QuoteConnector):
    kind = DexKind.CONCENTRATED_LIQUIDITY
    live_reverse_quotes = True

    def fee_tiers(self, dex: DexConfig, pair: TokenPair) -> list[Optional[int]]:
        return [tier for tier in dex.fee_tiers if not pair.skips(dex.dex_id, tier)]

    async def _quote(self, dex, pair, token_in, token_out, amount_in, fee_tier):
        if fee_tier is None:
            raise ValueError(f"{dex.name} requires a fee tier")
        if not dex.quoter:
            raise ValueError(f"{dex.name} has no quoter configured")
        quoter = self.ledger.contract(dex.quoter, UNISWAP_V3_QUOTER_ABI)
        call = quoter.functions.quoteExactInputSingle(
            self.ledger.checksum(token_in),
            self.ledger.checksum(token_out),
            fee_tier,
            amount_in,
            0,
        )
        return await self.ledger.call(call)


class WeightedPoolConnector(QuoteConnector):
    kind = DexKind.WEIGHTED_POOL

    async def _quote(self, dex, pair, token_in, token_out, amount_in, fee_tier):
        pool = pair.pool_for(dex.dex_id)
        if pool is None or not pool.pool_id:
            return None
        vault = self.ledger.contract(dex.router, BALANCER_VAULT_ABI)
        pool_id = bytes.fromhex(pool.pool_id[2:] if pool.pool_id.startswith('0x') else pool.pool_id)
        swaps = [(pool_id, 0, 1, amount_in, b'')]
        assets = [self.ledger.checksum(token_in), self.ledger.checksum(token_out)]
        funds = (ZERO_ADDRESS, False, ZERO_ADDRESS, False)
        deltas = await self.ledger.call(
            vault.functions.queryBatchSwap(BALANCER_GIVEN_IN, swaps, assets, funds)
        )
        # Vault deltas are from the pool's perspective: tokens leaving it are negative.
        return -deltas[1]


class StableSwapConnector(QuoteConnector):
    kind = DexKind.STABLE_SWAP

    async def _quote(self, dex, pair, token_in, token_out, amount_in, fee_tier):
        pool = pair.pool_for(dex.dex_id)
        if pool is None or not pool.address:
            return None
        forward = token_in.lower() == pair.token_a.lower()
        i, j = (pool.i, pool.j) if forward else (pool.j, pool.i)
        curve_pool = self.ledger.contract(pool.address, CURVE_POOL_ABI)
        return await self.ledger.call(curve_pool.functions.get_dy(i, j, amount_in))


class ProactiveMarketMakerConnector(QuoteConnector):
    kind = DexKind.PROACTIVE_MARKET_MAKER

    async def _quote(self, dex, pair, token_in, token_out, amount_in, fee_tier):
        pool = pair.pool_for(dex.dex_id)
        if pool is None or not pool.address:
            return None
        dodo_pool = self.ledger.contract(pool.address, DODO_POOL_ABI)
        trader = self.ledger.address or ZERO_ADDRESS
        forward = token_in.lower() == pair.token_a.lower()
        if forward == pool.base_is_token_a:
            received, _fee = await self.ledger.call(dodo_pool.functions.querySellBase(trader, amount_in))
        else:
            received, _fee = await self.ledger.call(dodo_pool.functions.querySellQuote(trader, amount_in))
        return received


CONNECTOR_TYPES = (
    ConstantProductConnector,
    ConcentratedLiquidityConnector,
    WeightedPoolConnector,
    StableSwapConnector,
    ProactiveMarketMakerConnector,
)


class QuoteService:
    """Routes quote requests to the connector for each configured venue."""

    def __init__(self, dexes: Sequence[DexConfig], connectors: Mapping[DexKind, QuoteConnector]) -> None:
        self.dexes = tuple(dexes)
        self.connectors = dict(connectors)
        self._by_id = {dex.dex_id: dex for dex in self.dexes}

    @classmethod
    def for_ledger(cls, ledger, dexes: Sequence[DexConfig]) -> "QuoteService":
        return cls(dexes, {connector.kind: connector(ledger) for connector in CONNECTOR_TYPES})

    def dex(self, dex_id: DexId) -> DexConfig:
        return self._by_id[dex_id]

    def connector_for(self, dex: DexConfig) -> QuoteConnector:
        try:
            return self.connectors[dex.kind]
        except KeyError:
            raise ValueError(f"No quote connector registered for {dex.kind.value}") from None

    def supports_live_reverse(self, dex: DexConfig) -> bool:
        return self.connector_for(dex).live_reverse_quotes

    async def quote(
        self,
        dex: DexConfig,
        pair: TokenPair,
        token_in: str,
        token_out: str,
        amount_in: int,
        fee_tier: Optional[int] = None,
    ) -> Optional[int]:
        return await self.connector_for(dex).quote(dex, pair, token_in, token_out, amount_in, fee_tier)

    async def collect(self, pair: TokenPair, amount_in: int) -> list[Quote]:
        """Quotes token_a -> token_b on every venue and tier, in configured order."""
        quotes: list[Quote] = []
        for dex in self.dexes:
            connector = self.connector_for(dex)
            for fee_tier in connector.fee_tiers(dex, pair):
                amount_out = await connector.quote(dex, pair, pair.token_a, pair.token_b, amount_in, fee_tier)
                if amount_out is None:
                    logger.debug(
                        "%s: no quote on %s",
                        pair.name,
                        dex.label(fee_tier),
                        extra={"event": "quote_unavailable"},
                    )
                    continue
                quote = Quote(dex=dex, amount_in=amount_in, amount_out=amount_out, fee_tier=fee_tier)
                logger.debug(
                    "%s: %s quotes %s -> %s",
                    pair.name,
                    quote.label,
                    amount_in,
                    amount_out,
                    extra={"event": "quote_obtained"},
                )
                quotes.append(quote)
        return quotes


def describe(quotes: Iterable[Quote]) -> str:
    return ", ".join(f"{quote.label}={quote.amount_out}" for quote in quotes) or "none"
