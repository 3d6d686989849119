"""Rounding helpers and tolerance constants shared by the ledger engine."""

from __future__ import annotations

import math

SHARE_PRECISION = 5
CURRENCY_PRECISION = 2
PERCENT_PRECISION = 2
PRICE_PRECISION = 4

SHARE_EPSILON = 1 / (10 ** (SHARE_PRECISION + 2))
CURRENCY_EPSILON = 1 / (10 ** (CURRENCY_PRECISION + 2))
PERCENT_EPSILON = 1 / (10 ** (PERCENT_PRECISION + 2))


def _round(value: float, digits: int) -> float:
    rounded = round(float(value), digits)
    # Normalise negative zero so stored rows never show "-0.0".
    return rounded + 0.0


def round_shares(value: float) -> float:
    return _round(value, SHARE_PRECISION)


def round_currency(value: float) -> float:
    return _round(value, CURRENCY_PRECISION)


def round_percent(value: float) -> float:
    return _round(value, PERCENT_PRECISION)


def round_price(value: float) -> float:
    """Round a per-share price to the precision used for wallet bucket keys."""

    return _round(value, PRICE_PRECISION)


def is_zero_shares(value: float | None) -> bool:
    return abs(value or 0.0) <= SHARE_EPSILON


def is_zero_currency(value: float | None) -> bool:
    return abs(value or 0.0) <= CURRENCY_EPSILON


def is_number(value: object) -> bool:
    """Return True for real, finite numbers (bools and NaN excluded)."""

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


__all__ = [
    "SHARE_PRECISION",
    "CURRENCY_PRECISION",
    "PERCENT_PRECISION",
    "PRICE_PRECISION",
    "SHARE_EPSILON",
    "CURRENCY_EPSILON",
    "PERCENT_EPSILON",
    "round_shares",
    "round_currency",
    "round_percent",
    "round_price",
    "is_zero_shares",
    "is_zero_currency",
    "is_number",
]
