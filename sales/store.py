"""
sales/store.py -- SQLAlchemy Core persistence for quotes, invoices and payments.

Pattern: Repository + Data Mapper (same as review/store.py and auth/store.py).

Numbering: quote and invoice numbers come from a single-row sales_sequences
table (EST-000001, INV-000001). The counter is bumped in the same
transaction as the insert, so a failed insert does not burn a number.
Explicit numbers are accepted; duplicates raise IntegrityError.

Line items are stored as a JSON array in a TEXT column. Totals are derived,
never stored (see sales/money.py).

recompute_invoice_status() is the only writer of the derived invoice
statuses (OVERDUE, PARTIALLY_PAID, PAID). Routes call it after every payment
change.

E-mail tracking: every quote or invoice mailed to a client gets one row in
sales_email_tracking per recipient. The row's token is embedded in the
message as a pixel URL; the first fetch stamps opened_at. A document counts
as opened once any of its rows has been opened.
"""

from __future__ import annotations

import json
import logging
import secrets
from dataclasses import asdict, fields
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
    select,
)
from sqlalchemy.engine import Connection, Engine

from core.config import get_settings
from core.db import make_engine, now_iso
from sales.models import Invoice, LineItem, Payment, Quote, SalesSettings
from sales.money import document_totals
from sales.status import invoice_effective_status

logger = logging.getLogger("reviewdesk.sales")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_settings = Table(
    "sales_settings",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("business_name", Text, nullable=False, server_default=""),
    Column("address", Text, nullable=False, server_default=""),
    Column("abn", String(50), nullable=False, server_default=""),
    Column("phone", String(50), nullable=False, server_default=""),
    Column("email", String(255), nullable=False, server_default=""),
    Column("website", String(255), nullable=False, server_default=""),
    Column("currency", String(3), nullable=False, server_default="AUD"),
    Column("fiscal_year_start_month", Integer, nullable=False, server_default="7"),
    Column("tax_rate_name", String(50), nullable=False, server_default="GST"),
    Column("tax_rate_percent", Float, nullable=False, server_default="10"),
    Column("default_quote_valid_days", Integer, nullable=False, server_default="14"),
    Column("default_invoice_due_days", Integer, nullable=False, server_default="7"),
    Column("default_terms", Text, nullable=False, server_default=""),
    Column("payment_details", Text, nullable=False, server_default=""),
    Column("updated_at", String(32)),
    CheckConstraint("id = 1", name="ck_sales_settings_single_row"),
)

_sequences = Table(
    "sales_sequences",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("quote", Integer, nullable=False, server_default="0"),
    Column("invoice", Integer, nullable=False, server_default="0"),
    CheckConstraint("id = 1", name="ck_sales_sequences_single_row"),
)

_quotes = Table(
    "sales_quotes",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("quote_number", String(30), nullable=False, unique=True),
    Column("status", String(20), nullable=False, server_default="OPEN"),
    Column("accepted_from_status", String(20)),
    Column("client_name", String(255), nullable=False),
    Column("project_id", Integer),
    Column("issue_date", String(10), nullable=False),
    Column("valid_until", String(10)),
    Column("notes", Text, nullable=False, server_default=""),
    Column("terms", Text, nullable=False, server_default=""),
    Column("items_json", Text, nullable=False, server_default="[]"),
    Column("sent_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_invoices = Table(
    "sales_invoices",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("invoice_number", String(30), nullable=False, unique=True),
    Column("status", String(20), nullable=False, server_default="OPEN"),
    Column("client_name", String(255), nullable=False),
    Column("project_id", Integer),
    Column("quote_id", Integer, ForeignKey("sales_quotes.id", ondelete="SET NULL"), unique=True),
    Column("issue_date", String(10), nullable=False),
    Column("due_date", String(10)),
    Column("notes", Text, nullable=False, server_default=""),
    Column("terms", Text, nullable=False, server_default=""),
    Column("items_json", Text, nullable=False, server_default="[]"),
    Column("sent_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_payments = Table(
    "sales_payments",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("payment_date", String(10), nullable=False),
    Column("amount_cents", Integer, nullable=False),
    Column("method", String(50), nullable=False, server_default=""),
    Column("reference", Text, nullable=False, server_default=""),
    Column("client_name", String(255)),
    Column("invoice_id", Integer, ForeignKey("sales_invoices.id", ondelete="SET NULL")),
    Column("exclude_from_invoice_balance", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_email_tracking = Table(
    "sales_email_tracking",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", String(64), nullable=False, unique=True),
    Column("doc_type", String(10), nullable=False),
    Column("doc_id", Integer, nullable=False, index=True),
    Column("recipient_email", String(320), nullable=False),
    Column("sent_at", String(32), nullable=False),
    Column("opened_at", String(32)),
    CheckConstraint("doc_type IN ('QUOTE', 'INVOICE')", name="ck_sales_email_tracking_doc_type"),
)

_SETTINGS_KEYS = {f.name for f in fields(SalesSettings)} - {"updated_at"}
_QUOTE_FIELDS = {"client_name", "project_id", "issue_date", "valid_until", "notes", "terms", "items", "status"}
_INVOICE_FIELDS = {"client_name", "project_id", "issue_date", "due_date", "notes", "terms", "items", "status"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _items_to_json(items: list[LineItem]) -> str:
    return json.dumps([asdict(i) for i in items])


def _items_from_json(raw: Optional[str]) -> list[LineItem]:
    try:
        data = json.loads(raw or "[]")
    except ValueError:
        return []
    allowed = {f.name for f in fields(LineItem)}
    return [LineItem(**{k: v for k, v in d.items() if k in allowed}) for d in data if isinstance(d, dict)]


def _prepare(values: dict) -> dict:
    """Translate dataclass-level field names into column values."""
    if "items" in values:
        values["items_json"] = _items_to_json(values.pop("items"))
    return values


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SalesStore:
    """Repository for the sales module.

    Usage:
        store = SalesStore()
        qid = store.create_quote(Quote(quote_number="", client_name="Acme", issue_date="2025-01-10"))
        store.get_quote(qid).quote_number   # "EST-000001"
    """

    def __init__(self, db_url: Optional[str] = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)
        self._ensure_singletons()

    def _ensure_singletons(self) -> None:
        with self.engine.connect() as conn:
            if conn.execute(select(_settings.c.id).where(_settings.c.id == 1)).first() is None:
                defaults = SalesSettings()
                conn.execute(
                    _settings.insert().values(
                        id=1, default_terms=defaults.default_terms, updated_at=now_iso()
                    )
                )
            if conn.execute(select(_sequences.c.id).where(_sequences.c.id == 1)).first() is None:
                conn.execute(_sequences.insert().values(id=1, quote=0, invoice=0))
            conn.commit()

    def _next_number(self, conn: Connection, kind: str) -> str:
        column = _sequences.c[kind]
        conn.execute(_sequences.update().where(_sequences.c.id == 1).values({kind: column + 1}))
        n = conn.execute(select(column).where(_sequences.c.id == 1)).scalar()
        prefix = "EST" if kind == "quote" else "INV"
        return f"{prefix}-{n:06d}"

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self) -> SalesSettings:
        with self.engine.connect() as conn:
            row = conn.execute(_settings.select().where(_settings.c.id == 1)).fetchone()
        if row is None:
            return SalesSettings()
        return SalesSettings(**{f.name: getattr(row, f.name) for f in fields(SalesSettings)})

    def update_settings(self, **kwargs) -> SalesSettings:
        """Update settings keys; unknown keys raise ValueError."""
        unknown = set(kwargs) - _SETTINGS_KEYS
        if unknown:
            raise ValueError(f"Unknown sales settings keys: {unknown!r}")
        if kwargs:
            with self.engine.connect() as conn:
                conn.execute(_settings.update().where(_settings.c.id == 1).values(updated_at=now_iso(), **kwargs))
                conn.commit()
        return self.get_settings()

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    def create_quote(self, quote: Quote) -> int:
        now = now_iso()
        with self.engine.connect() as conn:
            number = quote.quote_number or self._next_number(conn, "quote")
            result = conn.execute(
                _quotes.insert().values(
                    quote_number=number,
                    status=quote.status,
                    client_name=quote.client_name,
                    project_id=quote.project_id,
                    issue_date=quote.issue_date,
                    valid_until=quote.valid_until,
                    notes=quote.notes,
                    terms=quote.terms,
                    items_json=_items_to_json(quote.items),
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_quote(self, quote_id: int) -> Optional[Quote]:
        with self.engine.connect() as conn:
            row = conn.execute(_quotes.select().where(_quotes.c.id == quote_id)).fetchone()
        return _row_to_quote(row) if row is not None else None

    def list_quotes(
        self,
        client_name: Optional[str] = None,
        project_id: Optional[int] = None,
        limit: int = 500,
    ) -> list[Quote]:
        stmt = _quotes.select()
        if client_name:
            stmt = stmt.where(_quotes.c.client_name == client_name)
        if project_id is not None:
            stmt = stmt.where(_quotes.c.project_id == project_id)
        stmt = stmt.order_by(_quotes.c.issue_date.desc(), _quotes.c.created_at.desc()).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_quote(r) for r in rows]

    def update_quote(self, quote_id: int, **fields_) -> bool:
        unknown = set(fields_) - (_QUOTE_FIELDS | {"sent_at", "accepted_from_status"})
        if unknown:
            raise ValueError(f"Unknown quote fields: {sorted(unknown)!r}")
        values = _prepare(dict(fields_))
        values["updated_at"] = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_quotes.update().where(_quotes.c.id == quote_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def delete_quote(self, quote_id: int) -> bool:
        with self.engine.connect() as conn:
            conn.execute(_invoices.update().where(_invoices.c.quote_id == quote_id).values(quote_id=None))
            conn.execute(
                _email_tracking.delete().where(
                    (_email_tracking.c.doc_type == "QUOTE") & (_email_tracking.c.doc_id == quote_id)
                )
            )
            result = conn.execute(_quotes.delete().where(_quotes.c.id == quote_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def create_invoice(self, invoice: Invoice) -> int:
        now = now_iso()
        with self.engine.connect() as conn:
            number = invoice.invoice_number or self._next_number(conn, "invoice")
            result = conn.execute(
                _invoices.insert().values(
                    invoice_number=number,
                    status=invoice.status,
                    client_name=invoice.client_name,
                    project_id=invoice.project_id,
                    quote_id=invoice.quote_id,
                    issue_date=invoice.issue_date,
                    due_date=invoice.due_date,
                    notes=invoice.notes,
                    terms=invoice.terms,
                    items_json=_items_to_json(invoice.items),
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        with self.engine.connect() as conn:
            row = conn.execute(_invoices.select().where(_invoices.c.id == invoice_id)).fetchone()
        return _row_to_invoice(row) if row is not None else None

    def get_invoice_for_quote(self, quote_id: int) -> Optional[Invoice]:
        with self.engine.connect() as conn:
            row = conn.execute(_invoices.select().where(_invoices.c.quote_id == quote_id)).fetchone()
        return _row_to_invoice(row) if row is not None else None

    def list_invoices(
        self,
        client_name: Optional[str] = None,
        project_id: Optional[int] = None,
        invoice_ids: Optional[list[int]] = None,
        limit: int = 500,
    ) -> list[Invoice]:
        stmt = _invoices.select()
        if client_name:
            stmt = stmt.where(_invoices.c.client_name == client_name)
        if project_id is not None:
            stmt = stmt.where(_invoices.c.project_id == project_id)
        if invoice_ids:
            stmt = stmt.where(_invoices.c.id.in_(invoice_ids))
        stmt = stmt.order_by(_invoices.c.issue_date.desc(), _invoices.c.created_at.desc()).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_invoice(r) for r in rows]

    def update_invoice(self, invoice_id: int, **fields_) -> bool:
        unknown = set(fields_) - (_INVOICE_FIELDS | {"sent_at"})
        if unknown:
            raise ValueError(f"Unknown invoice fields: {sorted(unknown)!r}")
        values = _prepare(dict(fields_))
        values["updated_at"] = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_invoices.update().where(_invoices.c.id == invoice_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def delete_invoice(self, invoice_id: int) -> bool:
        """Delete an invoice. Its payments stay on record, unlinked."""
        with self.engine.connect() as conn:
            conn.execute(_payments.update().where(_payments.c.invoice_id == invoice_id).values(invoice_id=None))
            conn.execute(
                _email_tracking.delete().where(
                    (_email_tracking.c.doc_type == "INVOICE") & (_email_tracking.c.doc_id == invoice_id)
                )
            )
            result = conn.execute(_invoices.delete().where(_invoices.c.id == invoice_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def create_payment(self, payment: Payment) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _payments.insert().values(
                    payment_date=payment.payment_date,
                    amount_cents=payment.amount_cents,
                    method=payment.method,
                    reference=payment.reference,
                    client_name=payment.client_name,
                    invoice_id=payment.invoice_id,
                    exclude_from_invoice_balance=payment.exclude_from_invoice_balance,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_payment(self, payment_id: int) -> Optional[Payment]:
        with self.engine.connect() as conn:
            row = conn.execute(_payments.select().where(_payments.c.id == payment_id)).fetchone()
        return _row_to_payment(row) if row is not None else None

    def list_payments(
        self,
        client_name: Optional[str] = None,
        invoice_ids: Optional[list[int]] = None,
        limit: int = 500,
    ) -> list[Payment]:
        stmt = _payments.select()
        if client_name:
            stmt = stmt.where(_payments.c.client_name == client_name)
        if invoice_ids is not None:
            stmt = stmt.where(_payments.c.invoice_id.in_(invoice_ids))
        stmt = stmt.order_by(_payments.c.payment_date.desc(), _payments.c.created_at.desc()).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_payment(r) for r in rows]

    def delete_payment(self, payment_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_payments.delete().where(_payments.c.id == payment_id))
            conn.commit()
        return result.rowcount > 0

    def paid_by_invoice(self, invoice_ids: list[int]) -> dict[int, tuple[int, Optional[str]]]:
        """{invoice_id: (paid_cents, latest_payment_date)} over non-excluded payments."""
        if not invoice_ids:
            return {}
        stmt = (
            select(
                _payments.c.invoice_id,
                func.sum(_payments.c.amount_cents),
                func.max(_payments.c.payment_date),
            )
            .where(_payments.c.invoice_id.in_(invoice_ids) & (_payments.c.exclude_from_invoice_balance.is_(False)))
            .group_by(_payments.c.invoice_id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return {r[0]: (max(0, int(r[1] or 0)), r[2]) for r in rows}

    # ------------------------------------------------------------------
    # E-mail tracking
    # ------------------------------------------------------------------

    def create_email_tracking(self, doc_type: str, doc_id: int, recipient_email: str) -> str:
        """Record a mailed document and return the token for its open pixel."""
        token = secrets.token_urlsafe(32)
        with self.engine.connect() as conn:
            conn.execute(
                _email_tracking.insert().values(
                    token=token,
                    doc_type=doc_type,
                    doc_id=doc_id,
                    recipient_email=recipient_email.strip().lower(),
                    sent_at=now_iso(),
                )
            )
            conn.commit()
        return token

    def mark_email_opened(self, token: str) -> bool:
        """Stamp opened_at on the first open. True only when this call stamped it."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _email_tracking.update()
                .where((_email_tracking.c.token == token) & _email_tracking.c.opened_at.is_(None))
                .values(opened_at=now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def opened_doc_ids(self, doc_type: str, doc_ids: list[int]) -> set[int]:
        """The subset of doc_ids with at least one opened e-mail."""
        if not doc_ids:
            return set()
        stmt = (
            select(_email_tracking.c.doc_id)
            .where(
                (_email_tracking.c.doc_type == doc_type)
                & _email_tracking.c.doc_id.in_(doc_ids)
                & _email_tracking.c.opened_at.is_not(None)
            )
            .distinct()
        )
        with self.engine.connect() as conn:
            return {r[0] for r in conn.execute(stmt).fetchall()}

    def has_opened_email(self, doc_type: str, doc_id: int) -> bool:
        return doc_id in self.opened_doc_ids(doc_type, [doc_id])

    # ------------------------------------------------------------------
    # Derived invoice status
    # ------------------------------------------------------------------

    def recompute_invoice_status(self, invoice_id: int, now: Optional[datetime] = None) -> Optional[str]:
        """Store the invoice's effective status; return it (None if the invoice is gone)."""
        invoice = self.get_invoice(invoice_id)
        if invoice is None:
            return None
        rate = self.get_settings().tax_rate_percent
        total = document_totals(invoice.items, rate)["total_cents"]
        paid, _latest = self.paid_by_invoice([invoice_id]).get(invoice_id, (0, None))
        status = invoice_effective_status(invoice.status, invoice.sent_at, invoice.due_date, total, paid, now=now)
        if status != invoice.status:
            self.update_invoice(invoice_id, status=status)
            logger.info("Invoice %s status %s -> %s", invoice.invoice_number, invoice.status, status)
        return status

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_quote(row) -> Quote:
    return Quote(
        id=row.id,
        quote_number=row.quote_number,
        status=row.status,
        accepted_from_status=row.accepted_from_status,
        client_name=row.client_name,
        project_id=row.project_id,
        issue_date=row.issue_date,
        valid_until=row.valid_until,
        notes=row.notes or "",
        terms=row.terms or "",
        items=_items_from_json(row.items_json),
        sent_at=row.sent_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_invoice(row) -> Invoice:
    return Invoice(
        id=row.id,
        invoice_number=row.invoice_number,
        status=row.status,
        client_name=row.client_name,
        project_id=row.project_id,
        quote_id=row.quote_id,
        issue_date=row.issue_date,
        due_date=row.due_date,
        notes=row.notes or "",
        terms=row.terms or "",
        items=_items_from_json(row.items_json),
        sent_at=row.sent_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_payment(row) -> Payment:
    return Payment(
        id=row.id,
        payment_date=row.payment_date,
        amount_cents=row.amount_cents,
        method=row.method or "",
        reference=row.reference or "",
        client_name=row.client_name,
        invoice_id=row.invoice_id,
        exclude_from_invoice_balance=bool(row.exclude_from_invoice_balance),
        created_at=row.created_at,
    )
