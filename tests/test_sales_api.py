"""
tests/test_sales_api.py -- Integration tests for the /api/v1/sales routes.

Coverage:
  - Quotes: numbering, defaults from settings, send/accept/convert flow,
    convert guards (not accepted 400, converted twice 409)
  - Invoices: totals with per-item and default tax, overdue effective status
  - Payments: stored invoice status follows payments, excluded payments
    never reduce a balance, deleting a payment recomputes
  - Settings, rollup and overview
  - Sending by e-mail: one tracking token per recipient, the open pixel
    turns SENT into OPENED, SMTP unavailable or failing
  - Impossible calendar dates are rejected with 422
  - Every route requires admin
"""

from __future__ import annotations

from datetime import date, timedelta
from urllib.parse import urlsplit

from fastapi.testclient import TestClient


def _h(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


ITEMS = [{"description": "Edit day", "quantity": 2, "unit_price_cents": 1000}]


def _quote(client: TestClient, token: str, **overrides) -> dict:
    body = {"client_name": "Acme", "items": ITEMS}
    body.update(overrides)
    resp = client.post("/api/v1/sales/quotes", json=body, headers=_h(token))
    assert resp.status_code == 201, resp.text
    return resp.json()


def _invoice(client: TestClient, token: str, **overrides) -> dict:
    body = {"client_name": "Acme", "items": ITEMS}
    body.update(overrides)
    resp = client.post("/api/v1/sales/invoices", json=body, headers=_h(token))
    assert resp.status_code == 201, resp.text
    return resp.json()


def _pay(client: TestClient, token: str, invoice_id: int, amount: int, **overrides):
    body = {"payment_date": date.today().isoformat(), "amount_cents": amount, "invoice_id": invoice_id}
    body.update(overrides)
    return client.post("/api/v1/sales/payments", json=body, headers=_h(token))


def _status(client: TestClient, token: str, invoice_id: int) -> str:
    return client.get(f"/api/v1/sales/invoices/{invoice_id}", headers=_h(token)).json()["status"]


class TestSalesAuth:
    def test_requires_admin(self, api_client) -> None:
        client, _, _ = api_client
        assert client.get("/api/v1/sales/quotes").status_code == 401
        assert client.get("/api/v1/sales/overview").status_code == 401


class TestDateValidation:
    def test_impossible_dates_are_422(self, api_client) -> None:
        client, token, _ = api_client
        bad = "2024-02-30"
        assert client.post(
            "/api/v1/sales/quotes", json={"client_name": "Acme", "valid_until": bad}, headers=_h(token)
        ).status_code == 422
        assert client.post(
            "/api/v1/sales/invoices", json={"client_name": "Acme", "issue_date": bad}, headers=_h(token)
        ).status_code == 422
        assert client.post(
            "/api/v1/sales/payments", json={"payment_date": bad, "amount_cents": 100}, headers=_h(token)
        ).status_code == 422

    def test_impossible_date_in_patch_is_422(self, api_client) -> None:
        client, token, _ = api_client
        iid = _invoice(client, token)["id"]
        resp = client.patch(f"/api/v1/sales/invoices/{iid}", json={"due_date": "2025-13-01"}, headers=_h(token))
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_leap_day_is_accepted(self, api_client) -> None:
        client, token, _ = api_client
        quote = _quote(client, token, issue_date="2024-02-29")
        assert quote["valid_until"] == "2024-03-14"


class TestQuotes:
    def test_numbering_and_defaults(self, api_client) -> None:
        client, token, _ = api_client
        quote = _quote(client, token, issue_date="2025-03-01")
        assert quote["quote_number"].startswith("EST-")
        assert len(quote["quote_number"]) == len("EST-000001")
        assert quote["valid_until"] == "2025-03-15"
        assert quote["terms"] == "Payment due within 7 days unless otherwise agreed."
        assert quote["status"] == "OPEN"

    def test_totals(self, api_client) -> None:
        client, token, _ = api_client
        quote = _quote(
            client,
            token,
            items=[
                {"description": "Shoot", "quantity": 1, "unit_price_cents": 10000},
                {"description": "Export", "quantity": 1, "unit_price_cents": 1000, "tax_rate_percent": 0},
            ],
        )
        assert quote["subtotal_cents"] == 11000
        assert quote["tax_cents"] == 1000
        assert quote["total_cents"] == 12000

    def test_duplicate_number_is_409(self, api_client) -> None:
        client, token, _ = api_client
        _quote(client, token, quote_number="Q-CUSTOM-1")
        resp = client.post(
            "/api/v1/sales/quotes", json={"client_name": "Acme", "quote_number": "Q-CUSTOM-1"}, headers=_h(token)
        )
        assert resp.status_code == 409

    def test_expired_quote_is_closed(self, api_client) -> None:
        client, token, _ = api_client
        quote = _quote(client, token, issue_date="2020-01-01", valid_until="2020-01-15")
        assert quote["status"] == "OPEN"
        assert quote["effective_status"] == "CLOSED"

    def test_send_accept_convert(self, api_client) -> None:
        client, token, _ = api_client
        quote = _quote(client, token, notes="Two days in the suite")
        qid = quote["id"]

        sent = client.post(f"/api/v1/sales/quotes/{qid}/send", headers=_h(token)).json()
        assert sent["status"] == "SENT"
        assert sent["sent_at"]

        accepted = client.post(f"/api/v1/sales/quotes/{qid}/accept", headers=_h(token)).json()
        assert accepted["status"] == "ACCEPTED"
        assert accepted["accepted_from_status"] == "SENT"

        resp = client.post(f"/api/v1/sales/quotes/{qid}/convert", headers=_h(token))
        assert resp.status_code == 201
        invoice = resp.json()
        assert invoice["invoice_number"].startswith("INV-")
        assert invoice["quote_id"] == qid
        assert invoice["notes"] == "Two days in the suite"
        assert invoice["total_cents"] == quote["total_cents"]
        assert invoice["due_date"] == (date.today() + timedelta(days=7)).isoformat()

        again = client.post(f"/api/v1/sales/quotes/{qid}/convert", headers=_h(token))
        assert again.status_code == 409

    def test_convert_requires_accepted(self, api_client) -> None:
        client, token, _ = api_client
        quote = _quote(client, token)
        resp = client.post(f"/api/v1/sales/quotes/{quote['id']}/convert", headers=_h(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_state"

    def test_accepted_quote_cannot_be_sent(self, api_client) -> None:
        client, token, _ = api_client
        quote = _quote(client, token)
        client.post(f"/api/v1/sales/quotes/{quote['id']}/accept", headers=_h(token))
        assert client.post(f"/api/v1/sales/quotes/{quote['id']}/send", headers=_h(token)).status_code == 400
        assert client.post(f"/api/v1/sales/quotes/{quote['id']}/accept", headers=_h(token)).status_code == 400

    def test_patch_items_and_filter_by_client(self, api_client) -> None:
        client, token, _ = api_client
        quote = _quote(client, token, client_name="Filter Co")
        resp = client.patch(
            f"/api/v1/sales/quotes/{quote['id']}",
            json={"items": [{"description": "Grade", "quantity": 1, "unit_price_cents": 500}]},
            headers=_h(token),
        )
        assert resp.json()["subtotal_cents"] == 500
        listed = client.get("/api/v1/sales/quotes", params={"client_name": "Filter Co"}, headers=_h(token)).json()
        assert [q["id"] for q in listed] == [quote["id"]]

    def test_delete(self, api_client) -> None:
        client, token, _ = api_client
        quote = _quote(client, token)
        assert client.delete(f"/api/v1/sales/quotes/{quote['id']}", headers=_h(token)).status_code == 204
        assert client.get(f"/api/v1/sales/quotes/{quote['id']}", headers=_h(token)).status_code == 404


class TestInvoicesAndPayments:
    def test_overdue_invoice(self, api_client) -> None:
        client, token, _ = api_client
        invoice = _invoice(client, token, issue_date="2020-01-01", due_date="2020-01-08")
        assert invoice["effective_status"] == "OVERDUE"
        assert invoice["balance_cents"] == 2200

    def test_payments_drive_stored_status(self, api_client) -> None:
        client, token, _ = api_client
        invoice = _invoice(client, token)
        iid = invoice["id"]
        assert invoice["total_cents"] == 2200

        first = _pay(client, token, iid, 1000)
        assert first.status_code == 201
        assert first.json()["client_name"] == "Acme"
        assert _status(client, token, iid) == "PARTIALLY_PAID"

        second = _pay(client, token, iid, 1200).json()
        data = client.get(f"/api/v1/sales/invoices/{iid}", headers=_h(token)).json()
        assert data["status"] == "PAID"
        assert data["paid_cents"] == 2200
        assert data["balance_cents"] == 0

        assert client.delete(f"/api/v1/sales/payments/{second['id']}", headers=_h(token)).status_code == 204
        assert _status(client, token, iid) == "PARTIALLY_PAID"

    def test_excluded_payment_does_not_reduce_balance(self, api_client) -> None:
        client, token, _ = api_client
        iid = _invoice(client, token)["id"]
        _pay(client, token, iid, 2200, exclude_from_invoice_balance=True)
        data = client.get(f"/api/v1/sales/invoices/{iid}", headers=_h(token)).json()
        assert data["paid_cents"] == 0
        assert data["status"] == "OPEN"
        payments = client.get("/api/v1/sales/payments", params={"invoice_id": iid}, headers=_h(token)).json()
        assert len(payments) == 1

    def test_payment_for_missing_invoice_is_404(self, api_client) -> None:
        client, token, _ = api_client
        assert _pay(client, token, 999999, 100).status_code == 404

    def test_send_invoice(self, api_client) -> None:
        client, token, _ = api_client
        iid = _invoice(client, token)["id"]
        data = client.post(f"/api/v1/sales/invoices/{iid}/send", headers=_h(token)).json()
        assert data["status"] == "SENT"
        assert data["effective_status"] == "SENT"

    def test_delete_invoice_keeps_payments(self, api_client) -> None:
        client, token, _ = api_client
        iid = _invoice(client, token)["id"]
        pid = _pay(client, token, iid, 500).json()["id"]
        assert client.delete(f"/api/v1/sales/invoices/{iid}", headers=_h(token)).status_code == 204
        assert client.app.state.sales.get_payment(pid).invoice_id is None


class TestEmailDelivery:
    @staticmethod
    def _open(client: TestClient, tracking_url: str):
        return client.get(urlsplit(tracking_url).path)

    def test_quote_mail_open_shows_opened(self, api_client) -> None:
        client, token, _ = api_client
        mailer = client.app.state.mailer
        quote = _quote(client, token, client_name="Pixel Co")
        before = len(mailer.documents)

        resp = client.post(
            f"/api/v1/sales/quotes/{quote['id']}/send",
            json={"to_emails": ["Buyer@Pixel.test", "boss@pixel.test", "buyer@pixel.test"], "notes": "Thanks!"},
            headers=_h(token),
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["effective_status"] == "SENT"
        sent = mailer.documents[before:]
        assert [m["to"] for m in sent] == ["buyer@pixel.test", "boss@pixel.test"]
        assert sent[0]["doc_label"] == "Quote"
        assert sent[0]["doc_number"] == quote["quote_number"]
        assert sent[0]["notes"] == "Thanks!"
        assert sent[0]["tracking_url"] != sent[1]["tracking_url"]

        pixel = self._open(client, sent[1]["tracking_url"])
        assert pixel.status_code == 200
        assert pixel.headers["content-type"] == "image/gif"
        assert "no-store" in pixel.headers["cache-control"]

        data = client.get(f"/api/v1/sales/quotes/{quote['id']}", headers=_h(token)).json()
        assert data["status"] == "SENT"
        assert data["effective_status"] == "OPENED"
        rollup = client.get("/api/v1/sales/rollup", params={"client_name": "Pixel Co"}, headers=_h(token)).json()
        assert rollup["quote_effective_status_by_id"][str(quote["id"])] == "OPENED"

    def test_invoice_opened_until_paid(self, api_client) -> None:
        client, token, _ = api_client
        mailer = client.app.state.mailer
        iid = _invoice(client, token, client_name="Pixel Inv Co")["id"]
        client.post(f"/api/v1/sales/invoices/{iid}/send", json={"to_emails": ["ap@pixel.test"]}, headers=_h(token))
        assert mailer.documents[-1]["doc_label"] == "Invoice"
        self._open(client, mailer.documents[-1]["tracking_url"])

        data = client.get(f"/api/v1/sales/invoices/{iid}", headers=_h(token)).json()
        assert data["effective_status"] == "OPENED"
        rollup = client.get("/api/v1/sales/rollup", params={"invoice_ids": str(iid)}, headers=_h(token)).json()
        assert rollup["invoice_rollup_by_id"][str(iid)]["effective_status"] == "OPENED"

        _pay(client, token, iid, 2200)
        assert client.get(f"/api/v1/sales/invoices/{iid}", headers=_h(token)).json()["effective_status"] == "PAID"

    def test_unknown_tracking_token_still_gets_pixel(self, api_client) -> None:
        client, _, _ = api_client
        resp = client.get("/api/v1/sales/track/not-a-real-token")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/gif"

    def test_send_without_smtp_is_503_and_leaves_quote_open(self, api_client) -> None:
        client, token, _ = api_client
        mailer = client.app.state.mailer
        quote = _quote(client, token)
        mailer.configured = False
        try:
            resp = client.post(
                f"/api/v1/sales/quotes/{quote['id']}/send", json={"to_emails": ["a@b.test"]}, headers=_h(token)
            )
        finally:
            mailer.configured = True
        assert resp.status_code == 503
        assert client.get(f"/api/v1/sales/quotes/{quote['id']}", headers=_h(token)).json()["status"] == "OPEN"

    def test_smtp_failure_is_502(self, api_client) -> None:
        client, token, _ = api_client
        mailer = client.app.state.mailer
        iid = _invoice(client, token)["id"]
        mailer.fail_with = OSError("connection refused")
        try:
            resp = client.post(
                f"/api/v1/sales/invoices/{iid}/send", json={"to_emails": ["a@b.test"]}, headers=_h(token)
            )
        finally:
            mailer.fail_with = None
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "email_failed"

    def test_invalid_recipient_is_422(self, api_client) -> None:
        client, token, _ = api_client
        quote = _quote(client, token)
        resp = client.post(
            f"/api/v1/sales/quotes/{quote['id']}/send", json={"to_emails": ["not-an-email"]}, headers=_h(token)
        )
        assert resp.status_code == 422

class TestSettingsAndReports:
    def test_settings_update(self, api_client) -> None:
        client, token, _ = api_client
        resp = client.patch(
            "/api/v1/sales/settings", json={"business_name": "Cut Room", "currency": "NZD"}, headers=_h(token)
        )
        assert resp.status_code == 200
        assert resp.json()["business_name"] == "Cut Room"
        assert client.get("/api/v1/sales/settings", headers=_h(token)).json()["currency"] == "NZD"

    def test_invalid_currency_is_422(self, api_client) -> None:
        client, token, _ = api_client
        resp = client.patch("/api/v1/sales/settings", json={"currency": "dollars"}, headers=_h(token))
        assert resp.status_code == 422

    def test_rollup_by_invoice_ids(self, api_client) -> None:
        client, token, _ = api_client
        a = _invoice(client, token, client_name="Rollup Co")
        b = _invoice(client, token, client_name="Rollup Co")
        quote = _quote(client, token, client_name="Rollup Co")
        _pay(client, token, a["id"], 200)

        data = client.get(
            "/api/v1/sales/rollup",
            params={"client_name": "Rollup Co", "invoice_ids": f"{a['id']}, x, {a['id']}"},
            headers=_h(token),
        ).json()
        assert [i["id"] for i in data["invoices"]] == [a["id"]]
        assert [q["id"] for q in data["quotes"]] == [quote["id"]]
        rollup = data["invoice_rollup_by_id"][str(a["id"])]
        assert rollup["paid_cents"] == 200
        assert rollup["balance_cents"] == 2000
        assert rollup["effective_status"] == "PARTIALLY_PAID"
        assert str(b["id"]) not in data["invoice_rollup_by_id"]

    def test_rollup_by_project_scopes_payments(self, api_client) -> None:
        client, token, _ = api_client
        mine = _invoice(client, token, client_name="Scope Co", project_id=4242)
        other = _invoice(client, token, client_name="Scope Co", project_id=4343)
        _pay(client, token, mine["id"], 300)
        _pay(client, token, other["id"], 400)

        data = client.get("/api/v1/sales/rollup", params={"project_id": 4242}, headers=_h(token)).json()
        assert [i["id"] for i in data["invoices"]] == [mine["id"]]
        assert [p["invoice_id"] for p in data["payments"]] == [mine["id"]]

    def test_rollup_stats(self, api_client) -> None:
        client, token, _ = api_client
        _quote(client, token, client_name="Stats Co")
        _invoice(client, token, client_name="Stats Co", issue_date="2020-01-01", due_date="2020-01-08")
        data = client.get("/api/v1/sales/rollup", params={"client_name": "Stats Co"}, headers=_h(token)).json()
        assert data["stats"]["open_quotes"] == 1
        assert data["stats"]["overdue_invoices"] == 1
        assert data["stats"]["open_balance_cents"] == 2200

    def test_overview_shape(self, api_client) -> None:
        client, token, _ = api_client
        data = client.get("/api/v1/sales/overview", headers=_h(token)).json()
        assert set(data) == {
            "fiscal_year_label",
            "fiscal_year_start",
            "fiscal_year_end",
            "total_sales_cents",
            "overdue_balance_cents",
            "recent_payments_cents",
            "fiscal_year_totals",
        }
        assert data["total_sales_cents"] >= 0
