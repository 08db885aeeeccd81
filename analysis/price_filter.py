"""Rejects quotes whose implied price is implausible for the pair."""
from __future__ import annotations

import logging
from decimal import Decimal

from analysis.models import Quote, TokenPair

logger = logging.getLogger(__name__)


def implied_rate(pair: TokenPair, quote: Quote) -> Decimal:
    """token_b per one token_a, decimal-adjusted."""
    amount_out = Decimal(quote.amount_out) / Decimal(pair.one_b)
    amount_in = Decimal(quote.amount_in) / Decimal(pair.one_a)
    return amount_out / amount_in


class PriceSanityFilter:
    """Stateless: the same quote against the same pair always yields the same verdict."""

    def is_valid(self, pair: TokenPair, quote: Quote) -> bool:
        if quote.amount_out <= 0 or quote.amount_in <= 0:
            self._reject(pair, quote, None, "zero output")
            return False

        bounds = pair.price_bounds
        if bounds is None:
            return True

        rate = implied_rate(pair, quote)
        if not bounds.contains(rate):
            self._reject(pair, quote, rate, f"outside [{bounds.lower}, {bounds.upper}]")
            return False
        return True

    def filter(self, pair: TokenPair, quotes: list[Quote]) -> list[Quote]:
        return [quote for quote in quotes if self.is_valid(pair, quote)]

    @staticmethod
    def _reject(pair: TokenPair, quote: Quote, rate, reason: str) -> None:
        logger.warning(
            "Rejected %s quote on %s: rate=%s (%s)",
            pair.name,
            quote.label,
            f"{rate:.6f}" if rate is not None else "-",
            reason,
            extra={"event": "price_rejected"},
        )
