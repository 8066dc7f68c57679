from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

from bk_billing.domain.enums import COUNTED_REFUND_STATUSES, OrderRefundStatus, OrderStatus
from bk_billing.domain.money import Money, ensure_cents


class RefundableOrder(Protocol):
    total_price: int
    status: str
    refund_status: str | None


@dataclass(frozen=True)
class RefundValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)


def _field(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record[name]
    return getattr(record, name)


def _status_value(value: Any) -> str | None:
    return getattr(value, "value", value)


def validate_refund(order: RefundableOrder, amount: int) -> RefundValidation:
    """Structural checks of a refund amount against an order.

    Every rule is evaluated so the caller gets the complete list of problems.
    Refund history is not consulted here; see ``calculate_refundable_amount``.
    """
    ensure_cents(amount)
    currency = getattr(order, "currency", "EUR") or "EUR"
    requested = Money(amount, currency)
    order_total = Money(order.total_price, currency)
    errors: list[str] = []

    if _status_value(order.status) == OrderStatus.CANCELLED.value:
        errors.append("Cannot refund a cancelled order")

    if amount < 0:
        errors.append("Refund amount cannot be negative")

    if requested.amount > order_total.amount:
        errors.append(f"Refund amount ({requested}) cannot exceed order total ({order_total})")

    if amount == 0:
        errors.append("Refund amount must be greater than zero")

    if _status_value(order.refund_status) == OrderRefundStatus.FULL.value:
        errors.append("Order has already been fully refunded")

    return RefundValidation(valid=not errors, errors=errors)


def refunded_total(existing_refunds: Iterable[Any]) -> int:
    """Sum of refunds that already count against the order (approved or processed)."""
    counted = (
        Money(_field(r, "amount"))
        for r in existing_refunds
        if _status_value(_field(r, "status")) in COUNTED_REFUND_STATUSES
    )
    return sum(counted, Money.zero()).amount


def calculate_refundable_amount(order_total: int, existing_refunds: Iterable[Any]) -> int:
    ensure_cents(order_total, "order_total")
    remaining = Money(order_total) - Money(refunded_total(existing_refunds))
    return max(0, remaining.amount)


def would_be_full_refund(order_total: int, refund_amount: int, existing_refunds: Iterable[Any]) -> bool:
    ensure_cents(refund_amount, "refund_amount")
    return refund_amount >= calculate_refundable_amount(order_total, existing_refunds)


def derive_refund_status(order_total: int, existing_refunds: Iterable[Any]) -> OrderRefundStatus:
    total = refunded_total(existing_refunds)
    if total <= 0:
        return OrderRefundStatus.NONE
    if total >= order_total:
        return OrderRefundStatus.FULL
    return OrderRefundStatus.PARTIAL
