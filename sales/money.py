"""
sales/money.py -- Cent arithmetic for line items and documents.

Rounding is half-up toward positive infinity (floor(x + 0.5)). Python's
round() rounds half to even, which would move totals by a cent on .5
boundaries, so it is never used here.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable

from sales.models import LineItem


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def dollars_to_cents(text: str) -> int:
    """Parse "$1,234.56" style input into cents; 0 when nothing numeric remains."""
    cleaned = re.sub(r"[^0-9.\-]", "", text or "")
    try:
        value = float(cleaned)
    except ValueError:
        return 0
    if not math.isfinite(value):
        return 0
    return round_half_up(value * 100)


def cents_to_dollars(cents: int) -> str:
    """1234 -> "12.34", -5 -> "-0.05"."""
    sign = "-" if cents < 0 else ""
    return f"{sign}{abs(cents) / 100:.2f}"


def line_subtotal_cents(item: LineItem) -> int:
    return round_half_up(item.quantity * item.unit_price_cents)


def tax_cents(subtotal_cents: int, rate_percent: float) -> int:
    return round_half_up(subtotal_cents * (rate_percent / 100))


def line_tax_cents(item: LineItem, default_rate_percent: float) -> int:
    rate = item.tax_rate_percent if item.tax_rate_percent is not None else default_rate_percent
    return tax_cents(line_subtotal_cents(item), rate)


def subtotal_cents(items: Iterable[LineItem]) -> int:
    return sum(line_subtotal_cents(i) for i in items)


def total_tax_cents(items: Iterable[LineItem], default_rate_percent: float) -> int:
    return sum(line_tax_cents(i, default_rate_percent) for i in items)


def document_totals(items: list[LineItem], default_rate_percent: float) -> dict[str, int]:
    """{"subtotal_cents", "tax_cents", "total_cents"} for a quote or invoice."""
    subtotal = subtotal_cents(items)
    tax = total_tax_cents(items, default_rate_percent)
    return {"subtotal_cents": subtotal, "tax_cents": tax, "total_cents": subtotal + tax}
