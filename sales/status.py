"""
sales/status.py -- Effective status of quotes and invoices.

The stored status records what an admin did (sent, accepted, closed). The
effective status also accounts for the calendar and for payments:

  quote:   expired valid_until          -> CLOSED
  invoice: fully paid                   -> PAID
           past due_date with a balance -> OVERDUE
           partly paid                  -> PARTIALLY_PAID

Dates are calendar dates in server-local time; a date stays valid until the
end of that day. Every function takes `now` so tests can pin the clock.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time
from typing import Optional

_YMD = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def parse_date_only(value: Optional[str]) -> Optional[date]:
    """Parse YYYY-MM-DD (or a full ISO timestamp) into a date; None when unusable."""
    if not value:
        return None
    text = str(value).strip()
    m = _YMD.match(text)
    try:
        if m:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def end_of_day(d: date) -> datetime:
    return datetime.combine(d, time.max)


def _is_past(day: Optional[str], now: datetime) -> bool:
    parsed = parse_date_only(day)
    return parsed is not None and now > end_of_day(parsed)


def quote_effective_status(
    status: str,
    valid_until: Optional[str],
    has_opened_email: bool = False,
    now: Optional[datetime] = None,
) -> str:
    now = now or datetime.now()
    if status in ("CLOSED", "ACCEPTED"):
        return status
    if _is_past(valid_until, now):
        return "CLOSED"
    # OPENED ranks with SENT; only a quote that is otherwise SENT shows it.
    if status == "SENT" and has_opened_email:
        return "OPENED"
    return status


def invoice_effective_status(
    status: Optional[str],
    sent_at: Optional[str],
    due_date: Optional[str],
    total_cents: int,
    paid_cents: int,
    has_opened_email: bool = False,
    now: Optional[datetime] = None,
) -> str:
    now = now or datetime.now()
    if status in ("OPEN", "SENT"):
        base = status
    else:
        base = "SENT" if sent_at else "OPEN"

    if total_cents <= 0:
        return base

    paid = paid_cents or 0
    balance = max(0, total_cents - paid)
    if balance <= 0:
        return "PAID"
    if _is_past(due_date, now):
        return "OVERDUE"
    if paid > 0:
        return "PARTIALLY_PAID"
    if base == "SENT" and has_opened_email:
        return "OPENED"
    return base
