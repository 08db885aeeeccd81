#!/usr/bin/env python3
from decimal import Decimal
from typing import Optional, Sequence

from analysis.models import (
    Opportunity,
    PairEvaluation,
    Quote,
    RouteEvaluation,
    TokenPair,
)

BPS_DENOMINATOR = 10_000
FEE_PRECISION = 10 ** 18


def apply_fee(amount: int, fee_rate: Decimal) -> int:
    """Deducts a fractional fee using an 18-digit fixed-point multiplier."""
    multiplier = int((Decimal(1) - fee_rate) * FEE_PRECISION)
    return amount * multiplier // FEE_PRECISION


def inverse_amount(amount_b: int, target: Quote, pair: TokenPair) -> int:
    """
    Converts token_b back into token_a at the target quote's rate.

    The rate is taken from the forward quote (token_a -> token_b) so the result
    is what the algebraic inverse predicts, not a live reverse quote.
    """
    a_per_b = target.amount_in * pair.one_b // target.amount_out
    return amount_b * a_per_b // pair.one_b


def flash_loan_premium(amount: int, premium_bps: int) -> int:
    return amount * premium_bps // BPS_DENOMINATOR


def to_bps(profit: int, amount_in: int) -> int:
    """Profit in basis points of amount_in, truncated toward zero."""
    magnitude = abs(profit) * BPS_DENOMINATOR // amount_in
    return -magnitude if profit < 0 else magnitude


class OpportunityAnalyzer:
    def __init__(self, flash_loan_premium_bps: int, min_profit_bps: int):
        self.flash_loan_premium_bps = flash_loan_premium_bps
        self.min_profit_bps = min_profit_bps

    def evaluate_route(self, pair: TokenPair, amount_in: int, source: Quote, target: Quote) -> RouteEvaluation:
        # Quoters already return post-fee output, so only the reverse leg is charged here.
        amount_b = source.amount_out
        amount_b_after_fee = apply_fee(amount_b, target.fee_rate)
        final_amount = inverse_amount(amount_b_after_fee, target, pair)
        premium = flash_loan_premium(amount_in, self.flash_loan_premium_bps)
        profit = final_amount - amount_in - premium
        return RouteEvaluation(
            source=source,
            target=target,
            amount_b=amount_b,
            final_amount=final_amount,
            profit=profit,
            profit_bps=to_bps(profit, amount_in),
        )

    def evaluate(self, pair: TokenPair, amount_in: int, quotes: Sequence[Quote]) -> PairEvaluation:
        """Evaluates every ordered pair of distinct quotes and keeps the best positive one."""
        evaluation = PairEvaluation(pair=pair)
        if len(quotes) < 2:
            return evaluation

        best: Optional[RouteEvaluation] = None
        for source_idx, source in enumerate(quotes):
            for target_idx, target in enumerate(quotes):
                if source_idx == target_idx:
                    continue
                route = self.evaluate_route(pair, amount_in, source, target)
                evaluation.routes.append(route)
                if route.profit <= 0:
                    continue
                # Strict comparison: on a tie the first route seen wins.
                if best is None or route.profit > best.profit:
                    best = route

        if best is not None:
            evaluation.best = Opportunity(
                pair=pair,
                source=best.source,
                target=best.target,
                amount_in=amount_in,
                final_amount=best.final_amount,
                expected_profit=best.profit,
                profit_bps=best.profit_bps,
            )
        return evaluation

    def meets_threshold(self, opportunity: Opportunity) -> bool:
        return opportunity.profit_bps >= self.min_profit_bps
