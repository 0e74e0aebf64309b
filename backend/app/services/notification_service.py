"""
services/notification_service.py: Email collaborator for the sharing engine.

EmailNotifier.send(to, context) renders one of the templates in
app/templates/email/ and delivers it over SMTP. It never raises for a
delivery problem; the outcome comes back as a NotificationResult so each
caller decides what a failure means:

  - share created     -> failure is logged, the share stands
  - payment reminder  -> failure reverts the cooldown timestamp (502)

With no SMTP_HOST configured the notifier runs in dev mode: the message is
written to the log and reported as delivered.

Layer rules:
  - No Flask imports. The app factory builds one notifier from app.config
    and stores it in app.extensions["notifier"]; routes pass it down.
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from decimal import Decimal
from email.message import EmailMessage
from email.utils import make_msgid
from pathlib import Path
from typing import Mapping

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

logger = logging.getLogger(__name__)

_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"

EXPENSE_SHARED = "expense_shared"
PAYMENT_REMINDER = "payment_reminder"

_SUBJECTS = {
    EXPENSE_SHARED:   "{{ owner_name }} shared an expense with you - Balance Beacon",
    PAYMENT_REMINDER: "Reminder: You owe {{ amount | money(currency) }} - Balance Beacon",
}

_CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "ILS": "₪",
}


def format_money(amount, currency: str) -> str:
    """Decimal("150") + "USD" -> "$150.00". Unknown currencies use the code as prefix."""
    code = getattr(currency, "value", currency)
    symbol = _CURRENCY_SYMBOLS.get(code, code)
    return f"{symbol}{Decimal(amount):.2f}"


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


# ── Context builders ───────────────────────────────────────────────────────
# Services call these so the template variables are spelled in one place.

def expense_shared_context(
        participant_name: str,
        owner_name: str,
        description: str,
        amount: Decimal,
        total_amount: Decimal,
        currency: str,
) -> dict:
    return {
        "template":         EXPENSE_SHARED,
        "participant_name": participant_name,
        "owner_name":       owner_name,
        "description":      description,
        "amount":           amount,
        "total_amount":     total_amount,
        "currency":         getattr(currency, "value", currency),
    }


def payment_reminder_context(
        participant_name: str,
        owner_name: str,
        description: str,
        amount: Decimal,
        currency: str,
) -> dict:
    return {
        "template":         PAYMENT_REMINDER,
        "participant_name": participant_name,
        "owner_name":       owner_name,
        "description":      description,
        "amount":           amount,
        "currency":         getattr(currency, "value", currency),
    }


# ── Notifier ───────────────────────────────────────────────────────────────

class EmailNotifier:

    def __init__(
            self,
            host: str = "",
            port: int = 587,
            user: str = "",
            password: str = "",
            sender: str = "noreply@balancebeacon.com",
            app_url: str = "http://localhost:3000",
            timeout: int = 10,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.app_url = app_url.rstrip("/")
        self.timeout = timeout

        self._env = Environment(
            loader=FileSystemLoader(str(_TEMPLATE_DIR)),
            autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._env.filters["money"] = format_money

    @classmethod
    def from_config(cls, config: Mapping) -> "EmailNotifier":
        return cls(
            host=config.get("SMTP_HOST", ""),
            port=int(config.get("SMTP_PORT", 587)),
            user=config.get("SMTP_USER", ""),
            password=config.get("SMTP_PASSWORD", ""),
            sender=config.get("SMTP_FROM", "noreply@balancebeacon.com"),
            app_url=config.get("APP_URL", "http://localhost:3000"),
            timeout=int(config.get("SMTP_TIMEOUT_SECONDS", 10)),
        )

    @property
    def dev_mode(self) -> bool:
        return not self.host

    def render(self, context: Mapping) -> tuple[str, str, str]:
        """Returns (subject, text_body, html_body) for the template named in context."""
        name = context["template"]
        variables = dict(context, dashboard_url=f"{self.app_url}/")
        subject = self._env.from_string(_SUBJECTS[name]).render(**variables)
        text_body = self._env.get_template(f"{name}.txt").render(**variables)
        html_body = self._env.get_template(f"{name}.html").render(**variables)
        return subject, text_body, html_body

    def send(self, to: str, context: Mapping) -> NotificationResult:
        subject, text_body, html_body = self.render(context)

        if self.dev_mode:
            logger.info(
                "EMAIL (dev mode - SMTP not configured)\nTo: %s\nSubject: %s\n%s",
                to,
                subject,
                text_body,
            )
            return NotificationResult(success=True, message_id="dev-mode-no-send")

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid(domain=self.sender.rpartition("@")[2] or None)
        message.set_content(text_body)
        message.add_alternative(html_body, subtype="html")

        try:
            if self.port == 465:
                client = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
            else:
                client = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            with client:
                if self.port != 465:
                    client.starttls()
                if self.user:
                    client.login(self.user, self.password)
                client.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email to %s (%s): %s", to, subject, exc)
            return NotificationResult(success=False, error=str(exc))

        return NotificationResult(success=True, message_id=message["Message-ID"])
