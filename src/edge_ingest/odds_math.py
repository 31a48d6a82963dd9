"""Odds conversion and consensus rounding helpers."""

from __future__ import annotations

import math
from collections.abc import Sequence


def implied_prob_from_american(price: int | None) -> float | None:
    """Convert American odds to implied probability."""
    if price is None:
        return None
    if price > 0:
        return 100.0 / (price + 100.0)
    if price < 0:
        value = -price
        return value / (value + 100.0)
    return None


def market_hold(price_a: int | None, price_b: int | None) -> float | None:
    """Bookmaker margin of a two-way market, e.g. 0.0476 for -110/-110."""
    prob_a = implied_prob_from_american(price_a)
    prob_b = implied_prob_from_american(price_b)
    if prob_a is None or prob_b is None:
        return None
    return round(prob_a + prob_b - 1.0, 4)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going toward +inf."""
    return int(math.floor(value + 0.5))


def mean_price(values: Sequence[float]) -> int | None:
    """Consensus American price: mean rounded to an integer."""
    if not values:
        return None
    return round_half_up(sum(values) / len(values))


def mean_half_point(values: Sequence[float]) -> float | None:
    """Consensus line: mean rounded to the nearest half point."""
    if not values:
        return None
    return round_half_up((sum(values) / len(values)) * 2) / 2


def best_price(values: Sequence[int]) -> int | None:
    """Most favorable price for a bettor taking one side."""
    if not values:
        return None
    return max(values)


def largest_magnitude(values: Sequence[float]) -> float | None:
    """Observed line with the largest absolute value; first one wins ties."""
    best: float | None = None
    for value in values:
        if best is None or abs(value) > abs(best):
            best = value
    return best
