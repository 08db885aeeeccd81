"""Per-venue swap instructions and their encoding into the contract's SwapParams struct."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from eth_abi import encode

from analysis.models import DexConfig, DexKind, DexId, TokenPair
from constants import ZERO_BYTES32

# Order of fields in the on-chain SwapParams tuple.
SWAP_PARAMS_FIELDS = (
    'dex',
    'tokenIn',
    'tokenOut',
    'amountIn',
    'amountOutMin',
    'poolId',
    'fee',
    'i',
    'j',
    'extraData',
)


@dataclass(frozen=True)
class SwapInstruction:
    dex_id: DexId
    token_in: str
    token_out: str
    amount_in: int
    min_amount_out: int

    def venue_fields(self) -> Dict[str, Any]:
        return {}

    def as_contract_tuple(self) -> Tuple[Any, ...]:
        params: Dict[str, Any] = {
            'dex': int(self.dex_id),
            'tokenIn': self.token_in,
            'tokenOut': self.token_out,
            'amountIn': self.amount_in,
            'amountOutMin': self.min_amount_out,
            'poolId': ZERO_BYTES32,
            'fee': 0,
            'i': 0,
            'j': 0,
            'extraData': b'',
        }
        params.update(self.venue_fields())
        return tuple(params[name] for name in SWAP_PARAMS_FIELDS)


@dataclass(frozen=True)
class ConstantProductSwap(SwapInstruction):
    path: Tuple[str, ...] = ()

    def venue_fields(self) -> Dict[str, Any]:
        if len(self.path) > 2:
            return {'extraData': encode(['address[]'], [list(self.path)])}
        return {}


@dataclass(frozen=True)
class ConcentratedLiquiditySwap(SwapInstruction):
    fee_tier: int = 3000

    def venue_fields(self) -> Dict[str, Any]:
        return {'fee': self.fee_tier}


@dataclass(frozen=True)
class WeightedPoolSwap(SwapInstruction):
    pool_id: str = ''

    def venue_fields(self) -> Dict[str, Any]:
        return {'poolId': _to_bytes32(self.pool_id)}


@dataclass(frozen=True)
class StableSwapSwap(SwapInstruction):
    pool: str = ''
    i: int = 0
    j: int = 1

    def venue_fields(self) -> Dict[str, Any]:
        return {'i': self.i, 'j': self.j, 'extraData': encode(['address'], [self.pool])}


@dataclass(frozen=True)
class ProactiveMarketMakerSwap(SwapInstruction):
    extra_data: bytes = b''

    def venue_fields(self) -> Dict[str, Any]:
        return {'extraData': self.extra_data}


def _to_bytes32(value: str) -> bytes:
    raw = bytes.fromhex(value[2:] if value.startswith('0x') else value)
    if len(raw) != 32:
        raise ValueError(f"Pool id must be 32 bytes, got {len(raw)}")
    return raw


def build_swap_instruction(
    dex: DexConfig,
    pair: TokenPair,
    token_in: str,
    token_out: str,
    amount_in: int,
    min_amount_out: int,
    fee_tier: Optional[int] = None,
) -> SwapInstruction:
    """Selects the instruction variant for the venue's pricing model."""
    common = dict(
        dex_id=dex.dex_id,
        token_in=token_in,
        token_out=token_out,
        amount_in=amount_in,
        min_amount_out=min_amount_out,
    )
    pool = pair.pool_for(dex.dex_id)

    if dex.kind == DexKind.CONSTANT_PRODUCT:
        return ConstantProductSwap(path=(token_in, token_out), **common)

    if dex.kind == DexKind.CONCENTRATED_LIQUIDITY:
        # Legacy default when the opportunity carries no tier.
        return ConcentratedLiquiditySwap(fee_tier=fee_tier if fee_tier is not None else 3000, **common)

    if pool is None:
        raise ValueError(f"{dex.name} requires pool configuration for {pair.name}")

    if dex.kind == DexKind.WEIGHTED_POOL:
        return WeightedPoolSwap(pool_id=pool.pool_id or '', **common)

    forward = token_in.lower() == pair.token_a.lower()
    if dex.kind == DexKind.STABLE_SWAP:
        i, j = (pool.i, pool.j) if forward else (pool.j, pool.i)
        return StableSwapSwap(pool=pool.address or '', i=i, j=j, **common)

    if dex.kind == DexKind.PROACTIVE_MARKET_MAKER:
        sells_base = forward == pool.base_is_token_a
        extra = encode(['address', 'bool'], [pool.address, sells_base])
        return ProactiveMarketMakerSwap(extra_data=extra, **common)

    raise ValueError(f"Unsupported DEX kind: {dex.kind}")
