"""
Money helpers.

Amounts are integer minor units. The default currency (TND) has 3 decimals,
so 16500 is "16.500 TND".
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

BPS_DENOMINATOR = 10_000


def format_amount(amount: int, decimals: int = 3) -> str:
    """Render minor units as a fixed-point string: 16500 -> "16.500"."""
    quantum = Decimal(1).scaleb(-decimals)
    return str((Decimal(amount) * quantum).quantize(quantum))


def format_money(amount: int, currency: str = "TND", decimals: int = 3) -> str:
    return f"{format_amount(amount, decimals)} {currency}"


def apply_rate_bps(amount: int, rate_bps: int) -> int:
    """
    amount * rate_bps / 10000, rounded half-up to a whole minor unit.

    Half-up is applied away from zero so negative bases mirror positive ones.
    """
    exact = Decimal(amount) * Decimal(rate_bps) / Decimal(BPS_DENOMINATOR)
    return int(exact.quantize(Decimal(1), rounding=ROUND_HALF_UP))
