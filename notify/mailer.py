"""
notify/mailer.py -- Outbound e-mail over SMTP.

HTML bodies are rendered from notify/templates/ with Jinja2 (autoescape on,
so a project title can never inject markup). Every message also carries a
plain-text alternative.

Sending is synchronous. Route handlers that send mail are plain `def`
handlers, so FastAPI runs them in its thread pool and the event loop is not
blocked by the SMTP round-trip.

Sales documents carry a 1x1 tracking image in the HTML part only; the
plain-text part never references it.

Tests replace app.state.mailer with a recording fake exposing the same
is_configured() / send_otp() / send_sales_document() interface.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import Settings

logger = logging.getLogger("reviewdesk.notify")

_env = Environment(
    loader=FileSystemLoader(str(Path(__file__).parent / "templates")),
    autoescape=select_autoescape(["html"]),
)


class Mailer:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def is_configured(self) -> bool:
        return self._settings.smtp_configured()

    def send(self, to: str, subject: str, text: str, html: str | None = None) -> None:
        """Send one message. Raises smtplib.SMTPException / OSError on delivery failure."""
        s = self._settings
        if not self.is_configured():
            raise RuntimeError("SMTP is not configured")
        msg = EmailMessage()
        msg["From"] = s.smtp_from
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text)
        if html:
            msg.add_alternative(html, subtype="html")

        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=20) as smtp:
            if s.smtp_use_tls:
                smtp.starttls()
            if s.smtp_username and s.smtp_password:
                smtp.login(s.smtp_username, s.smtp_password)
            smtp.send_message(msg)
        logger.info("Sent %r to %s", subject, to)

    def send_otp(self, to: str, project_title: str, code: str, expiry_minutes: int) -> None:
        context = {"project_title": project_title, "code": code, "expiry_minutes": expiry_minutes}
        self.send(
            to,
            subject=f"Your verification code for {project_title}",
            text=_env.get_template("otp.txt").render(**context),
            html=_env.get_template("otp.html").render(**context),
        )

    def send_sales_document(
        self,
        to: str,
        doc_label: str,
        doc_number: str,
        client_name: str,
        business_name: str,
        total: str,
        tracking_url: str,
        date_label: str = "",
        date_value: str = "",
        notes: str = "",
    ) -> None:
        """Mail a quote or invoice summary. doc_label is "Quote" or "Invoice"."""
        context = {
            "doc_label": doc_label,
            "doc_number": doc_number,
            "client_name": client_name,
            "business_name": business_name or "us",
            "total": total,
            "tracking_url": tracking_url,
            "date_label": date_label,
            "date_value": date_value,
            "notes": notes,
        }
        self.send(
            to,
            subject=f"{doc_label} {doc_number}",
            text=_env.get_template("sales_document.txt").render(**context),
            html=_env.get_template("sales_document.html").render(**context),
        )
