"""
api/routes/v1/sales.py -- Quotes, invoices, payments and sales reporting.

Routes (all admin, under /api/v1/sales):
  GET/POST          /quotes                  -- list (?client_name=&project_id=) / create
  GET/PATCH/DELETE  /quotes/{id}
  POST              /quotes/{id}/send        -- mail to clients (optional), mark SENT, stamp sent_at
  POST              /quotes/{id}/accept      -- mark ACCEPTED
  POST              /quotes/{id}/convert     -- create an invoice from an accepted quote
  GET/POST          /invoices
  GET/PATCH/DELETE  /invoices/{id}
  POST              /invoices/{id}/send      -- as for quotes
  GET/POST          /payments
  DELETE            /payments/{id}
  GET/PATCH         /settings
  GET               /rollup                  -- documents plus derived balances and stats
  GET               /overview                -- fiscal-year dashboard figures

Public (no auth):
  GET               /track/{token}          -- e-mail open pixel; stamps the first open

Documents are returned with their computed totals and effective status.
Money is integer cents throughout. Every payment change recomputes the
stored status of the invoice it touches.

A sent document whose e-mail has been opened reports OPENED as its
effective status until it is paid, overdue or closed.
"""

from __future__ import annotations

import base64
import logging
import smtplib
from dataclasses import asdict
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.exc import IntegrityError

from api.models import (
    InvoiceCreate,
    InvoicePatch,
    LineItemIn,
    PaymentCreate,
    QuoteCreate,
    QuotePatch,
    SalesSettingsPatch,
    SendDocumentRequest,
)
from api.routes.v1.common import fail
from auth.dependencies import require_admin
from auth.models import User
from core.config import get_settings
from core.db import now_iso
from sales.models import Invoice, LineItem, Payment, Quote
from sales.money import document_totals
from sales.rollup import DEFAULT_LIMIT, build_rollup, overview, parse_invoice_ids
from sales.status import invoice_effective_status, quote_effective_status
from sales.store import SalesStore

logger = logging.getLogger("reviewdesk.api.sales")

# Auth policy: every route on `router` requires admin (enforced on the router).
# `tracking_router` is public: mail clients fetch the pixel without credentials.
router = APIRouter(prefix="/sales", dependencies=[Depends(require_admin)])
tracking_router = APIRouter(prefix="/sales")

# Transparent 1x1 GIF.
_PIXEL = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")
_PIXEL_HEADERS = {"Cache-Control": "no-store, no-cache, must-revalidate", "Pragma": "no-cache", "Expires": "0"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _store(request: Request) -> SalesStore:
    return request.app.state.sales


def _items(items: list[LineItemIn]) -> list[LineItem]:
    return [LineItem(**i.model_dump()) for i in items]


def _today() -> date:
    return date.today()


def _quote_out(store: SalesStore, quote: Quote) -> dict:
    totals = document_totals(quote.items, store.get_settings().tax_rate_percent)
    return {
        **asdict(quote),
        **totals,
        "effective_status": quote_effective_status(
            quote.status, quote.valid_until, has_opened_email=store.has_opened_email("QUOTE", quote.id)
        ),
    }


def _invoice_out(store: SalesStore, invoice: Invoice) -> dict:
    totals = document_totals(invoice.items, store.get_settings().tax_rate_percent)
    paid, latest = store.paid_by_invoice([invoice.id]).get(invoice.id, (0, None))
    return {
        **asdict(invoice),
        **totals,
        "paid_cents": paid,
        "balance_cents": max(0, totals["total_cents"] - paid),
        "latest_payment_date": latest,
        "effective_status": invoice_effective_status(
            invoice.status,
            invoice.sent_at,
            invoice.due_date,
            totals["total_cents"],
            paid,
            has_opened_email=store.has_opened_email("INVOICE", invoice.id),
        ),
    }


def _get_quote_or_404(store: SalesStore, quote_id: int) -> Quote:
    quote = store.get_quote(quote_id)
    if quote is None:
        fail(404, "not_found", "Quote not found.")
    return quote


def _get_invoice_or_404(store: SalesStore, invoice_id: int) -> Invoice:
    invoice = store.get_invoice(invoice_id)
    if invoice is None:
        fail(404, "not_found", "Invoice not found.")
    return invoice


def _format_money(cents: int, currency: str) -> str:
    return f"{currency} {cents / 100:,.2f}"


def _mail_document(
    request: Request,
    doc_type: str,
    doc: Quote | Invoice,
    body: Optional[SendDocumentRequest],
) -> int:
    """Mail a quote or invoice to each recipient with its own open-tracking token.

    Returns the number of messages sent. Nothing is sent, and the document is
    left unchanged, when SMTP is not configured.
    """
    if body is None or not body.to_emails:
        return 0
    state = request.app.state
    if not state.mailer.is_configured():
        fail(503, "smtp_unavailable", "Email is not configured on this server.")

    store = _store(request)
    settings = store.get_settings()
    total = document_totals(doc.items, settings.tax_rate_percent)["total_cents"]
    if doc_type == "QUOTE":
        label, number, date_label, date_value = "Quote", doc.quote_number, "Valid until", doc.valid_until
    else:
        label, number, date_label, date_value = "Invoice", doc.invoice_number, "Due", doc.due_date
    base_url = get_settings().public_base_url.rstrip("/")

    for email in body.to_emails:
        token = store.create_email_tracking(doc_type, doc.id, email)
        try:
            state.mailer.send_sales_document(
                email,
                doc_label=label,
                doc_number=number,
                client_name=doc.client_name,
                business_name=settings.business_name,
                total=_format_money(total, settings.currency),
                tracking_url=f"{base_url}/api/v1/sales/track/{token}",
                date_label=date_label if date_value else "",
                date_value=date_value or "",
                notes=body.notes or "",
            )
        except (smtplib.SMTPException, OSError) as exc:
            logger.exception("Failed to mail %s %s to %s", label.lower(), number, email)
            raise HTTPException(
                status_code=502,
                detail={"code": "email_failed", "message": f"Failed to send {label.lower()} email."},
            ) from exc
    logger.info("%s %s mailed to %d recipient(s)", label, number, len(body.to_emails))
    return len(body.to_emails)


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


@router.get("/quotes")
def list_quotes(
    request: Request,
    client_name: Optional[str] = Query(default=None),
    project_id: Optional[int] = Query(default=None),
) -> list[dict]:
    store = _store(request)
    return [_quote_out(store, q) for q in store.list_quotes(client_name=client_name, project_id=project_id)]


@router.post("/quotes", status_code=201)
def create_quote(request: Request, body: QuoteCreate) -> dict:
    """Create a quote. Dates and terms default from the sales settings."""
    store = _store(request)
    settings = store.get_settings()
    issue = body.issue_date or _today().isoformat()
    valid_until = body.valid_until or (
        date.fromisoformat(issue) + timedelta(days=settings.default_quote_valid_days)
    ).isoformat()
    quote = Quote(
        quote_number=body.quote_number or "",
        client_name=body.client_name,
        project_id=body.project_id,
        issue_date=issue,
        valid_until=valid_until,
        notes=body.notes,
        terms=body.terms if body.terms is not None else settings.default_terms,
        items=_items(body.items),
    )
    try:
        quote_id = store.create_quote(quote)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409, detail={"code": "conflict", "message": "That quote number is already in use."}
        ) from exc
    return _quote_out(store, store.get_quote(quote_id))


@router.get("/quotes/{quote_id}")
def get_quote(request: Request, quote_id: int) -> dict:
    store = _store(request)
    return _quote_out(store, _get_quote_or_404(store, quote_id))


@router.patch("/quotes/{quote_id}")
def update_quote(request: Request, quote_id: int, body: QuotePatch) -> dict:
    store = _store(request)
    _get_quote_or_404(store, quote_id)
    changes = body.model_dump(exclude_unset=True)
    changes = {k: v for k, v in changes.items() if v is not None or k == "project_id"}
    if "items" in changes:
        changes["items"] = _items(body.items)
    if not changes:
        fail(400, "no_changes", "No fields to update.")
    store.update_quote(quote_id, **changes)
    return _quote_out(store, store.get_quote(quote_id))


@router.delete("/quotes/{quote_id}", status_code=204)
def delete_quote(request: Request, quote_id: int) -> Response:
    if not _store(request).delete_quote(quote_id):
        fail(404, "not_found", "Quote not found.")
    return Response(status_code=204)


@router.post("/quotes/{quote_id}/send")
def send_quote(request: Request, quote_id: int, body: Optional[SendDocumentRequest] = None) -> dict:
    """Mark a quote SENT, mailing it first when recipients are given."""
    store = _store(request)
    quote = _get_quote_or_404(store, quote_id)
    if quote.status in ("ACCEPTED", "CLOSED"):
        fail(400, "invalid_state", f"A {quote.status.lower()} quote cannot be sent.")
    _mail_document(request, "QUOTE", quote, body)
    store.update_quote(quote_id, status="SENT", sent_at=now_iso())
    return _quote_out(store, store.get_quote(quote_id))


@router.post("/quotes/{quote_id}/accept")
def accept_quote(request: Request, quote_id: int) -> dict:
    store = _store(request)
    quote = _get_quote_or_404(store, quote_id)
    if quote.status == "ACCEPTED":
        fail(400, "invalid_state", "Quote is already accepted.")
    store.update_quote(quote_id, status="ACCEPTED", accepted_from_status=quote.status)
    logger.info("Quote %s accepted", quote.quote_number)
    return _quote_out(store, store.get_quote(quote_id))


@router.post("/quotes/{quote_id}/convert", status_code=201)
def convert_quote(request: Request, quote_id: int) -> dict:
    """Create an invoice carrying the quote's client, project, items and terms."""
    store = _store(request)
    quote = _get_quote_or_404(store, quote_id)
    if quote.status != "ACCEPTED":
        fail(400, "invalid_state", "Only accepted quotes can be converted to an invoice.")
    if store.get_invoice_for_quote(quote_id) is not None:
        fail(409, "conflict", "This quote has already been converted to an invoice.")

    settings = store.get_settings()
    today = _today()
    invoice_id = store.create_invoice(
        Invoice(
            invoice_number="",
            client_name=quote.client_name,
            project_id=quote.project_id,
            quote_id=quote.id,
            issue_date=today.isoformat(),
            due_date=(today + timedelta(days=settings.default_invoice_due_days)).isoformat(),
            notes=quote.notes,
            terms=quote.terms,
            items=quote.items,
        )
    )
    invoice = store.get_invoice(invoice_id)
    logger.info("Quote %s converted to invoice %s", quote.quote_number, invoice.invoice_number)
    return _invoice_out(store, invoice)


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------


@router.get("/invoices")
def list_invoices(
    request: Request,
    client_name: Optional[str] = Query(default=None),
    project_id: Optional[int] = Query(default=None),
) -> list[dict]:
    store = _store(request)
    return [_invoice_out(store, i) for i in store.list_invoices(client_name=client_name, project_id=project_id)]


@router.post("/invoices", status_code=201)
def create_invoice(request: Request, body: InvoiceCreate) -> dict:
    store = _store(request)
    settings = store.get_settings()
    issue = body.issue_date or _today().isoformat()
    due = body.due_date or (
        date.fromisoformat(issue) + timedelta(days=settings.default_invoice_due_days)
    ).isoformat()
    invoice = Invoice(
        invoice_number=body.invoice_number or "",
        client_name=body.client_name,
        project_id=body.project_id,
        issue_date=issue,
        due_date=due,
        notes=body.notes,
        terms=body.terms if body.terms is not None else settings.default_terms,
        items=_items(body.items),
    )
    try:
        invoice_id = store.create_invoice(invoice)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409, detail={"code": "conflict", "message": "That invoice number is already in use."}
        ) from exc
    return _invoice_out(store, store.get_invoice(invoice_id))


@router.get("/invoices/{invoice_id}")
def get_invoice(request: Request, invoice_id: int) -> dict:
    store = _store(request)
    return _invoice_out(store, _get_invoice_or_404(store, invoice_id))


@router.patch("/invoices/{invoice_id}")
def update_invoice(request: Request, invoice_id: int, body: InvoicePatch) -> dict:
    store = _store(request)
    _get_invoice_or_404(store, invoice_id)
    changes = body.model_dump(exclude_unset=True)
    changes = {k: v for k, v in changes.items() if v is not None or k == "project_id"}
    if "items" in changes:
        changes["items"] = _items(body.items)
    if not changes:
        fail(400, "no_changes", "No fields to update.")
    store.update_invoice(invoice_id, **changes)
    store.recompute_invoice_status(invoice_id)
    return _invoice_out(store, store.get_invoice(invoice_id))


@router.delete("/invoices/{invoice_id}", status_code=204)
def delete_invoice(request: Request, invoice_id: int) -> Response:
    if not _store(request).delete_invoice(invoice_id):
        fail(404, "not_found", "Invoice not found.")
    return Response(status_code=204)


@router.post("/invoices/{invoice_id}/send")
def send_invoice(request: Request, invoice_id: int, body: Optional[SendDocumentRequest] = None) -> dict:
    store = _store(request)
    invoice = _get_invoice_or_404(store, invoice_id)
    _mail_document(request, "INVOICE", invoice, body)
    store.update_invoice(invoice_id, status="SENT", sent_at=now_iso())
    store.recompute_invoice_status(invoice_id)
    return _invoice_out(store, store.get_invoice(invoice_id))


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@router.get("/payments")
def list_payments(
    request: Request,
    client_name: Optional[str] = Query(default=None),
    invoice_id: Optional[int] = Query(default=None),
) -> list[dict]:
    payments = _store(request).list_payments(
        client_name=client_name,
        invoice_ids=[invoice_id] if invoice_id is not None else None,
    )
    return [asdict(p) for p in payments]


@router.post("/payments", status_code=201)
def create_payment(request: Request, body: PaymentCreate) -> dict:
    store = _store(request)
    client_name = body.client_name
    if body.invoice_id is not None:
        invoice = _get_invoice_or_404(store, body.invoice_id)
        client_name = client_name or invoice.client_name
    payment_id = store.create_payment(
        Payment(
            payment_date=body.payment_date,
            amount_cents=body.amount_cents,
            method=body.method,
            reference=body.reference,
            client_name=client_name,
            invoice_id=body.invoice_id,
            exclude_from_invoice_balance=body.exclude_from_invoice_balance,
        )
    )
    if body.invoice_id is not None:
        store.recompute_invoice_status(body.invoice_id)
    return asdict(store.get_payment(payment_id))


@router.delete("/payments/{payment_id}", status_code=204)
def delete_payment(request: Request, payment_id: int) -> Response:
    store = _store(request)
    payment = store.get_payment(payment_id)
    if payment is None:
        fail(404, "not_found", "Payment not found.")
    store.delete_payment(payment_id)
    if payment.invoice_id is not None:
        store.recompute_invoice_status(payment.invoice_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Settings and reporting
# ---------------------------------------------------------------------------


@router.get("/settings")
def get_sales_settings(request: Request) -> dict:
    return asdict(_store(request).get_settings())


@router.patch("/settings")
def update_sales_settings(
    request: Request,
    body: SalesSettingsPatch,
    current_user: User = Depends(require_admin),
) -> dict:
    changes = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    settings = _store(request).update_settings(**changes)
    logger.info("Sales settings updated by user %s: %s", current_user.id, sorted(changes))
    return asdict(settings)


@router.get("/rollup")
def rollup(
    request: Request,
    client_name: Optional[str] = Query(default=None),
    project_id: Optional[int] = Query(default=None),
    invoice_ids: Optional[str] = Query(default=None),
    invoices_limit: int = Query(default=DEFAULT_LIMIT, ge=1),
    quotes_limit: int = Query(default=DEFAULT_LIMIT, ge=1),
    payments_limit: int = Query(default=DEFAULT_LIMIT, ge=1),
    include_invoices: bool = Query(default=True),
    include_quotes: bool = Query(default=True),
    include_payments: bool = Query(default=True),
) -> dict:
    """Documents plus derived per-invoice balances, quote statuses and stats."""
    return build_rollup(
        _store(request),
        client_name=client_name,
        project_id=project_id,
        invoice_ids=parse_invoice_ids(invoice_ids),
        invoices_limit=invoices_limit,
        quotes_limit=quotes_limit,
        payments_limit=payments_limit,
        include_invoices=include_invoices,
        include_quotes=include_quotes,
        include_payments=include_payments,
    )


@router.get("/overview")
def sales_overview(request: Request) -> dict:
    return overview(_store(request))


# ---------------------------------------------------------------------------
# E-mail open tracking (public)
# ---------------------------------------------------------------------------


@tracking_router.get("/track/{token}", include_in_schema=False)
def track_email_open(request: Request, token: str) -> Response:
    """Serve the tracking pixel. Unknown tokens get the same pixel, so valid tokens are not revealed."""
    if len(token) <= 64 and _store(request).mark_email_opened(token):
        logger.info("Sales e-mail opened (token %s...)", token[:8])
    return Response(content=_PIXEL, media_type="image/gif", headers=_PIXEL_HEADERS)
