from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from bk_billing.core.config import get_settings
from bk_billing.notifications.templates import render_email
from bk_billing.notifications.transport import EmailMessage, EmailTransport, build_email_transport

logger = logging.getLogger(__name__)

# Called as schedule(func, *args). FastAPI routes pass BackgroundTasks.add_task.
Scheduler = Callable[..., Any]


def run_inline(func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    func(*args, **kwargs)


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    error: str | None = None
    message_id: str | None = None


@dataclass(frozen=True)
class RefundNotice:
    refund_id: str
    order_id: str
    invoice_id: str | None
    amount: int
    reason: str
    status: str
    method: str
    customer_name: str
    customer_email: str | None
    order_total: int
    currency: str
    created_at: datetime


@dataclass(frozen=True)
class InvoiceNotice:
    invoice_number: str
    customer_name: str
    customer_email: str | None
    total: int
    currency: str
    created_at: datetime
    pdf_url: str | None = None
    pdf_path: Path | None = None


class NotificationDispatcher:
    """Best-effort customer/admin emails for refund and invoice events.

    Every public method returns a ``NotificationResult``; nothing raises, so a
    mail outage can never fail a financial operation that already committed.
    Results are not retried.
    """

    def __init__(
        self,
        transport: EmailTransport,
        admin_email: str | None = None,
        company_name: str = "BK Agencements",
        company_tagline: str = "Mobilier sur-mesure d'exception",
    ):
        self.transport = transport
        self.admin_email = admin_email
        self.company_name = company_name
        self.company_tagline = company_tagline

    @classmethod
    def from_settings(cls, transport: EmailTransport | None = None) -> "NotificationDispatcher":
        settings = get_settings()
        return cls(
            transport=transport or build_email_transport(),
            admin_email=settings.admin_notification_email,
            company_name=settings.company_name,
            company_tagline=settings.company_tagline,
        )

    def _deliver(
        self,
        kind: str,
        to: str | None,
        subject: str,
        template: str,
        context: dict,
        attachments: tuple[Path, ...] = (),
    ) -> NotificationResult:
        if not to:
            return NotificationResult(success=False, error=f"No recipient for {kind} email")
        try:
            html, text = render_email(
                template,
                {
                    "title": subject,
                    "company_name": self.company_name,
                    "company_tagline": self.company_tagline,
                    **context,
                },
            )
            message_id = self.transport.send(
                EmailMessage(to=to, subject=subject, html=html, text=text, attachments=attachments)
            )
        except Exception as exc:
            logger.warning("failed to send %s email to %s: %s", kind, to, exc, exc_info=True)
            return NotificationResult(success=False, error=str(exc) or f"Failed to send {kind} email")
        logger.info("sent %s email to %s id=%s", kind, to, message_id)
        return NotificationResult(success=True, message_id=message_id)

    def send_refund_email(self, refund: RefundNotice) -> NotificationResult:
        return self._deliver(
            "refund",
            refund.customer_email,
            f"Votre remboursement - {self.company_name}",
            "refund_customer",
            {"refund": refund},
        )

    def send_refund_admin_email(self, refund: RefundNotice) -> NotificationResult:
        if not self.admin_email:
            return NotificationResult(success=False, error="Admin email not configured")
        return self._deliver(
            "refund admin",
            self.admin_email,
            f"Remboursement {refund.status} - commande #{refund.order_id[:8]}",
            "refund_admin",
            {"refund": refund},
        )

    def send_invoice_email(self, invoice: InvoiceNotice) -> NotificationResult:
        attachments: tuple[Path, ...] = ()
        if invoice.pdf_path is not None and invoice.pdf_path.exists():
            attachments = (invoice.pdf_path,)
        return self._deliver(
            "invoice",
            invoice.customer_email,
            f"Votre facture {invoice.invoice_number} - {self.company_name}",
            "invoice_customer",
            {"invoice": invoice},
            attachments=attachments,
        )

    def send_admin_invoice_email(self, invoice: InvoiceNotice) -> NotificationResult:
        if not self.admin_email:
            return NotificationResult(success=False, error="Admin email not configured")
        return self._deliver(
            "invoice admin",
            self.admin_email,
            f"Nouvelle facture {invoice.invoice_number}",
            "invoice_admin",
            {"invoice": invoice},
        )

    def notify_refund(self, refund: RefundNotice) -> list[NotificationResult]:
        return [self.send_refund_email(refund), self.send_refund_admin_email(refund)]

    def notify_invoice(self, invoice: InvoiceNotice) -> list[NotificationResult]:
        return [self.send_invoice_email(invoice), self.send_admin_invoice_email(invoice)]
