from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from bk_billing.core.clock import now_utc

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

INVOICE_NUMBER_RE = re.compile(r"^[A-Za-z0-9]+-\d{4}-\d{6}$")


def generate_invoice_number(now: datetime | None = None, prefix: str = "BK") -> str:
    """``{prefix}-{year}-{NNNNNN}`` with the low six digits of the epoch millis.

    Uniqueness is only probabilistic: two calls in the same millisecond (or
    exactly 1000 seconds apart) collide. The ``invoices.invoice_number`` unique
    constraint turns a collision into an error rather than a duplicate.
    """
    if now is None:
        now = now_utc()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    millis = (now - _EPOCH) // timedelta(milliseconds=1)
    return f"{prefix}-{now.year}-{millis % 1_000_000:06d}"


def is_valid_invoice_number(value: str) -> bool:
    return bool(INVOICE_NUMBER_RE.match(value))
