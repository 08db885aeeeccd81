#!/usr/bin/env python3
import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, IntEnum
from typing import List, Mapping, Optional, Tuple


class DexId(IntEnum):
    """Venue index understood by the on-chain arbitrage contract."""
    UNISWAP_V2 = 0
    UNISWAP_V3 = 1
    SUSHISWAP = 2
    BALANCER = 3
    CURVE = 4
    DODO = 5

    @classmethod
    def parse(cls, value) -> "DexId":
        if isinstance(value, DexId):
            return value
        if isinstance(value, int):
            return cls(value)
        return cls[str(value).strip().upper()]


class DexKind(str, Enum):
    """Pricing model family; decides which quote connector and swap variant apply."""
    CONSTANT_PRODUCT = 'constant_product'
    CONCENTRATED_LIQUIDITY = 'concentrated_liquidity'
    WEIGHTED_POOL = 'weighted_pool'
    STABLE_SWAP = 'stable_swap'
    PROACTIVE_MARKET_MAKER = 'proactive_market_maker'


@dataclass(frozen=True)
class DexConfig:
    """Static description of one exchange venue."""
    dex_id: DexId
    kind: DexKind
    name: str
    router: str
    fee: Decimal
    quoter: Optional[str] = None
    fee_tiers: Tuple[int, ...] = ()

    def label(self, fee_tier: Optional[int] = None) -> str:
        if fee_tier is None:
            return self.name
        pct = Decimal(fee_tier) / Decimal(10_000)
        return f"{self.name} ({pct.normalize():f}%)"


@dataclass(frozen=True)
class PriceBounds:
    """Plausible range of token_b per one token_a."""
    lower: Decimal
    upper: Decimal
    inclusive: bool = True

    def contains(self, rate: Decimal) -> bool:
        if self.inclusive:
            return self.lower <= rate <= self.upper
        return self.lower < rate < self.upper


@dataclass(frozen=True)
class PoolRef:
    """Per-pair pool data for venues that quote against a specific pool."""
    pool_id: Optional[str] = None
    address: Optional[str] = None
    i: int = 0
    j: int = 1
    base_is_token_a: bool = True


@dataclass(frozen=True)
class TokenPair:
    """A base asset (borrowed) and the intermediate token it is traded through."""
    name: str
    token_a: str
    token_b: str
    decimals_a: int
    decimals_b: int
    price_bounds: Optional[PriceBounds] = None
    pools: Mapping[DexId, PoolRef] = field(default_factory=dict)
    skip_fee_tiers: Mapping[DexId, Tuple[int, ...]] = field(default_factory=dict)

    @property
    def symbol_a(self) -> str:
        return self.name.split('/')[0]

    @property
    def symbol_b(self) -> str:
        parts = self.name.split('/')
        return parts[1] if len(parts) > 1 else parts[0]

    @property
    def one_a(self) -> int:
        return 10 ** self.decimals_a

    @property
    def one_b(self) -> int:
        return 10 ** self.decimals_b

    def pool_for(self, dex_id: DexId) -> Optional[PoolRef]:
        return self.pools.get(dex_id)

    def skips(self, dex_id: DexId, fee_tier: Optional[int]) -> bool:
        return fee_tier is not None and fee_tier in self.skip_fee_tiers.get(dex_id, ())

    def __hash__(self) -> int:
        return hash((self.name, self.token_a, self.token_b))


@dataclass(frozen=True)
class Quote:
    """Amount of token_b obtainable for amount_in of token_a on one venue/tier."""
    dex: DexConfig
    amount_in: int
    amount_out: int
    fee_tier: Optional[int] = None
    discovered_at: float = field(default_factory=time.time)

    @property
    def key(self) -> Tuple[DexId, Optional[int]]:
        return (self.dex.dex_id, self.fee_tier)

    @property
    def label(self) -> str:
        return self.dex.label(self.fee_tier)

    @property
    def fee_rate(self) -> Decimal:
        # Venue base fee, whatever tier the quote came from.
        return self.dex.fee


@dataclass(frozen=True)
class RouteEvaluation:
    """Round-trip result for one ordered (source, target) pair of quotes."""
    source: Quote
    target: Quote
    amount_b: int
    final_amount: int
    profit: int
    profit_bps: int

    @property
    def label(self) -> str:
        return f"{self.source.label} -> {self.target.label}"


@dataclass(frozen=True)
class Opportunity:
    """Most profitable positive route for a pair in one scan."""
    pair: TokenPair
    source: Quote
    target: Quote
    amount_in: int
    final_amount: int
    expected_profit: int
    profit_bps: int

    @property
    def route(self) -> str:
        return f"{self.source.label} -> {self.target.label}"

    @property
    def key(self) -> str:
        return f"{self.pair.name}-{self.route}"


@dataclass
class PairEvaluation:
    pair: TokenPair
    routes: List[RouteEvaluation] = field(default_factory=list)
    best: Optional[Opportunity] = None
