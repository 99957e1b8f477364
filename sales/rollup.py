"""
sales/rollup.py -- Balance rollups and fiscal-year overview for the sales dashboard.

build_rollup() joins invoices, quotes and payments into one response with
per-document effective statuses, so clients never recompute balances.
overview() buckets invoice totals into fiscal years.

Both functions are pure apart from reading through SalesStore; `now` is
injectable for tests.
"""

from __future__ import annotations

import calendar
from dataclasses import asdict
from datetime import date, datetime, timedelta
from typing import Optional

from sales.money import document_totals
from sales.status import invoice_effective_status, parse_date_only, quote_effective_status
from sales.store import SalesStore

DEFAULT_LIMIT = 500
MAX_INVOICES = 2000
MAX_QUOTES = 2000
MAX_PAYMENTS = 5000
MAX_INVOICE_IDS = 200
RECENT_PAYMENT_DAYS = 30


def _clamp(value: Optional[int], maximum: int) -> int:
    if value is None:
        return DEFAULT_LIMIT
    return max(1, min(maximum, int(value)))


def parse_invoice_ids(raw: Optional[str]) -> list[int]:
    """Parse "1,2, 3" into ids; non-numeric parts are dropped, at most 200 kept."""
    if not raw:
        return []
    ids: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if part.isdigit() and int(part) not in ids:
            ids.append(int(part))
    return ids[:MAX_INVOICE_IDS]


# ---------------------------------------------------------------------------
# Rollup
# ---------------------------------------------------------------------------


def build_rollup(
    store: SalesStore,
    client_name: Optional[str] = None,
    project_id: Optional[int] = None,
    invoice_ids: Optional[list[int]] = None,
    invoices_limit: Optional[int] = None,
    quotes_limit: Optional[int] = None,
    payments_limit: Optional[int] = None,
    include_invoices: bool = True,
    include_quotes: bool = True,
    include_payments: bool = True,
    now: Optional[datetime] = None,
) -> dict:
    now = now or datetime.now()
    rate = store.get_settings().tax_rate_percent
    ids = (invoice_ids or [])[:MAX_INVOICE_IDS]

    # Payments follow the invoices when a project is given, so the project
    # invoices are read even if the caller skips the invoice section.
    invoices = []
    if include_invoices or (include_payments and project_id is not None):
        invoices = store.list_invoices(
            client_name=client_name,
            project_id=project_id,
            invoice_ids=ids or None,
            limit=_clamp(invoices_limit, MAX_INVOICES),
        )

    # invoice_ids narrows invoices and payments only; quotes keep the other filters.
    quotes = []
    if include_quotes:
        quotes = store.list_quotes(
            client_name=client_name,
            project_id=project_id,
            limit=_clamp(quotes_limit, MAX_QUOTES),
        )

    payments = []
    if include_payments:
        if project_id is not None:
            payment_invoice_ids: Optional[list[int]] = [inv.id for inv in invoices]
        else:
            payment_invoice_ids = ids or None
        payments = store.list_payments(
            client_name=None if payment_invoice_ids is not None else client_name,
            invoice_ids=payment_invoice_ids,
            limit=_clamp(payments_limit, MAX_PAYMENTS),
        )
    if not include_invoices:
        invoices = []

    paid = store.paid_by_invoice([inv.id for inv in invoices])
    opened_invoices = store.opened_doc_ids("INVOICE", [inv.id for inv in invoices])
    opened_quotes = store.opened_doc_ids("QUOTE", [q.id for q in quotes])
    invoice_rollup: dict[int, dict] = {}
    for inv in invoices:
        total = document_totals(inv.items, rate)["total_cents"]
        paid_cents, latest = paid.get(inv.id, (0, None))
        invoice_rollup[inv.id] = {
            "total_cents": total,
            "paid_cents": paid_cents,
            "balance_cents": max(0, total - paid_cents),
            "effective_status": invoice_effective_status(
                inv.status,
                inv.sent_at,
                inv.due_date,
                total,
                paid_cents,
                has_opened_email=inv.id in opened_invoices,
                now=now,
            ),
            "latest_payment_date": latest,
        }

    quote_status = {
        q.id: quote_effective_status(q.status, q.valid_until, has_opened_email=q.id in opened_quotes, now=now)
        for q in quotes
    }

    open_invoices = [r for r in invoice_rollup.values() if r["effective_status"] != "PAID"]
    stats = {
        "open_quotes": sum(1 for s in quote_status.values() if s in ("OPEN", "SENT", "OPENED")),
        "open_quote_drafts": sum(1 for s in quote_status.values() if s == "OPEN"),
        "open_invoices": len(open_invoices),
        "overdue_invoices": sum(1 for r in invoice_rollup.values() if r["effective_status"] == "OVERDUE"),
        "open_balance_cents": sum(r["balance_cents"] for r in open_invoices),
    }

    return {
        "tax_rate_percent": rate,
        "invoices": [asdict(i) for i in invoices],
        "quotes": [asdict(q) for q in quotes],
        "payments": [asdict(p) for p in payments],
        "invoice_rollup_by_id": invoice_rollup,
        "quote_effective_status_by_id": quote_status,
        "stats": stats,
    }


# ---------------------------------------------------------------------------
# Fiscal years
# ---------------------------------------------------------------------------


def fiscal_year_for(day: date, start_month: int) -> tuple[date, date, str]:
    """(first day, last day, "YY-YY" label) of the fiscal year containing `day`.

    A January start keeps the two-year label of the other start months
    ("24-25" for calendar 2024) so labels read the same across settings.
    """
    month = max(1, min(12, int(start_month or 7)))
    start_year = day.year if day.month >= month else day.year - 1
    start = date(start_year, month, 1)
    if month == 1:
        end = date(start_year, 12, 31)
    else:
        end_month = month - 1
        end = date(start_year + 1, end_month, calendar.monthrange(start_year + 1, end_month)[1])
    label = f"{str(start_year)[-2:]}-{str(start_year + 1)[-2:]}"
    return start, end, label


def overview(store: SalesStore, now: Optional[datetime] = None) -> dict:
    """Dashboard figures for the fiscal year containing `now`."""
    now = now or datetime.now()
    settings = store.get_settings()
    start_month = settings.fiscal_year_start_month
    start, end, label = fiscal_year_for(now.date(), start_month)

    rollup = build_rollup(
        store,
        invoices_limit=MAX_INVOICES,
        payments_limit=MAX_PAYMENTS,
        include_quotes=False,
        now=now,
    )
    by_id = rollup["invoice_rollup_by_id"]

    total_sales = 0
    overdue_balance = 0
    fiscal_totals: dict[str, int] = {}
    for inv in rollup["invoices"]:
        r = by_id[inv["id"]]
        if r["effective_status"] == "OVERDUE":
            overdue_balance += max(0, r["balance_cents"])
        issued = parse_date_only(inv["issue_date"])
        if issued is None:
            continue
        total = max(0, r["total_cents"])
        fy_label = fiscal_year_for(issued, start_month)[2]
        fiscal_totals[fy_label] = fiscal_totals.get(fy_label, 0) + total
        if start <= issued <= end:
            total_sales += total

    threshold = now.date() - timedelta(days=RECENT_PAYMENT_DAYS)
    recent = 0
    for p in rollup["payments"]:
        if p["exclude_from_invoice_balance"]:
            continue
        paid_on = parse_date_only(p["payment_date"])
        if paid_on is None or paid_on < threshold:
            continue
        recent += max(0, p["amount_cents"])

    return {
        "fiscal_year_label": label,
        "fiscal_year_start": start.isoformat(),
        "fiscal_year_end": end.isoformat(),
        "total_sales_cents": total_sales,
        "overdue_balance_cents": overdue_balance,
        "recent_payments_cents": recent,
        "fiscal_year_totals": dict(sorted(fiscal_totals.items())),
    }
