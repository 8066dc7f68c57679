from bk_billing.notifications.dispatcher import (
    InvoiceNotice,
    NotificationDispatcher,
    NotificationResult,
    RefundNotice,
    Scheduler,
    run_inline,
)
from bk_billing.notifications.transport import (
    EmailMessage,
    EmailTransport,
    FastMailTransport,
    LoggingEmailTransport,
    build_email_transport,
)

__all__ = [
    "EmailMessage",
    "EmailTransport",
    "FastMailTransport",
    "InvoiceNotice",
    "LoggingEmailTransport",
    "NotificationDispatcher",
    "NotificationResult",
    "RefundNotice",
    "Scheduler",
    "build_email_transport",
    "run_inline",
]
