from __future__ import annotations

from fastapi import BackgroundTasks, Depends

from bk_billing.domain.invoices.service import InvoiceService
from bk_billing.domain.refunds import RefundService
from bk_billing.notifications import NotificationDispatcher


def get_notifier() -> NotificationDispatcher:
    return NotificationDispatcher.from_settings()


def get_refund_service(
    background_tasks: BackgroundTasks,
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> RefundService:
    # Emails are delivered after the response has been sent.
    return RefundService(notifier=notifier, schedule=background_tasks.add_task)


def get_invoice_service(
    background_tasks: BackgroundTasks,
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> InvoiceService:
    return InvoiceService.from_settings(notifier=notifier, schedule=background_tasks.add_task)
