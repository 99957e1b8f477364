"""
sales/models.py -- Domain dataclasses for quotes, invoices and payments.

All money is integer cents. Document totals are never stored: they are
recomputed from the line items and the default tax rate by sales/money.py,
so editing the tax rate in settings re-prices items that carry no rate of
their own.

Stored statuses are the ones an admin sets (OPEN, SENT, ACCEPTED, CLOSED)
plus whatever recompute_invoice_status() last wrote for invoices. The status
shown to users is always the EFFECTIVE status from sales/status.py.
"""

from dataclasses import dataclass, field
from typing import Optional

QUOTE_STATUSES = ("OPEN", "SENT", "OPENED", "CLOSED", "ACCEPTED")
INVOICE_STATUSES = ("OPEN", "SENT", "OPENED", "OVERDUE", "PARTIALLY_PAID", "PAID")


@dataclass
class LineItem:
    description: str
    quantity: float = 1.0
    unit_price_cents: int = 0
    details: str = ""
    tax_rate_percent: Optional[float] = None  # None -> settings default
    tax_rate_name: Optional[str] = None


@dataclass
class Quote:
    quote_number: str
    client_name: str
    issue_date: str  # YYYY-MM-DD
    id: Optional[int] = None
    status: str = "OPEN"
    accepted_from_status: Optional[str] = None
    project_id: Optional[int] = None
    valid_until: Optional[str] = None
    notes: str = ""
    terms: str = ""
    items: list[LineItem] = field(default_factory=list)
    sent_at: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Invoice:
    invoice_number: str
    client_name: str
    issue_date: str  # YYYY-MM-DD
    id: Optional[int] = None
    status: str = "OPEN"
    project_id: Optional[int] = None
    quote_id: Optional[int] = None  # set when converted from a quote
    due_date: Optional[str] = None
    notes: str = ""
    terms: str = ""
    items: list[LineItem] = field(default_factory=list)
    sent_at: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class Payment:
    """A received payment. Excluded payments are listed but never reduce a balance."""

    payment_date: str  # YYYY-MM-DD
    amount_cents: int
    id: Optional[int] = None
    method: str = ""
    reference: str = ""
    client_name: Optional[str] = None
    invoice_id: Optional[int] = None
    exclude_from_invoice_balance: bool = False
    created_at: str = ""


@dataclass
class SalesSettings:
    business_name: str = ""
    address: str = ""
    abn: str = ""
    phone: str = ""
    email: str = ""
    website: str = ""
    currency: str = "AUD"
    fiscal_year_start_month: int = 7
    tax_rate_name: str = "GST"
    tax_rate_percent: float = 10.0
    default_quote_valid_days: int = 14
    default_invoice_due_days: int = 7
    default_terms: str = "Payment due within 7 days unless otherwise agreed."
    payment_details: str = ""
    updated_at: Optional[str] = None
