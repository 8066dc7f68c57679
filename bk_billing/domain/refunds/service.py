from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from bk_billing.core.clock import now_utc
from bk_billing.domain.enums import RefundMethod, RefundStatus
from bk_billing.domain.errors import InvalidStateError, NotFoundError, RefundValidationError
from bk_billing.domain.money import format_money
from bk_billing.domain.orders import OrderRepository
from bk_billing.domain.refunds.repository import RefundRepository
from bk_billing.domain.refunds.validation import (
    calculate_refundable_amount,
    derive_refund_status,
    validate_refund,
    would_be_full_refund,
)
from bk_billing.notifications import NotificationDispatcher, RefundNotice, Scheduler, run_inline
from bk_billing.persistence import pg
from bk_billing.persistence.models import InvoiceModel, OrderModel, RefundModel

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


@dataclass(frozen=True)
class RefundRecord:
    id: str
    order_id: str
    invoice_id: str | None
    amount: int
    reason: str
    method: str
    status: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, row: RefundModel) -> "RefundRecord":
        return cls(
            id=row.id,
            order_id=row.order_id,
            invoice_id=row.invoice_id,
            amount=row.amount,
            reason=row.reason,
            method=row.method,
            status=row.status,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


@dataclass(frozen=True)
class RefundTransition:
    refund: RefundRecord
    order_id: str
    order_total: int
    order_refund_status: str


@dataclass(frozen=True)
class RefundHistoryItem:
    refund_id: str
    order_id: str
    amount: int
    reason: str
    status: str
    method: str
    created_at: datetime
    customer_name: str
    customer_email: str | None


def _notice(refund: RefundRecord, order: OrderModel) -> RefundNotice:
    return RefundNotice(
        refund_id=refund.id,
        order_id=refund.order_id,
        invoice_id=refund.invoice_id,
        amount=refund.amount,
        reason=refund.reason,
        status=refund.status,
        method=refund.method,
        customer_name=order.customer_name,
        customer_email=order.customer_email,
        order_total=order.total_price,
        currency=order.currency,
        created_at=refund.created_at,
    )


class RefundService:
    """Refund state machine: ``pending -> approved -> processed``.

    Each operation runs the read-validate-write sequence inside a single
    transaction holding a row lock on the order, so two concurrent requests
    cannot both pass the refundable-amount check. Notifications are handed to
    ``schedule`` only after the transaction has committed; the HTTP layer passes
    ``BackgroundTasks.add_task`` so delivery happens after the response.
    """

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        notifier: NotificationDispatcher | None = None,
        schedule: Scheduler = run_inline,
    ):
        self._session_factory = session_factory
        self.notifier = notifier
        self.schedule = schedule

    def _scope(self) -> AbstractContextManager[Session]:
        if self._session_factory is not None:
            return self._session_factory()
        return pg.session_scope()

    def _notify(self, notice: RefundNotice) -> None:
        if self.notifier is not None:
            self.schedule(self._deliver, notice)

    def _deliver(self, notice: RefundNotice) -> None:
        for result in self.notifier.notify_refund(notice):
            if not result.success:
                logger.warning("refund %s notification not delivered: %s", notice.refund_id, result.error)

    def create(self, order_id: str, amount: int, reason: str, method: str | RefundMethod) -> RefundRecord:
        with self._scope() as session:
            orders = OrderRepository(session)
            refunds = RefundRepository(session)

            order = orders.get(order_id, for_update=True)
            if order is None:
                raise NotFoundError("Order", order_id)

            errors = list(validate_refund(order, amount).errors)
            try:
                method_value = RefundMethod(method).value
            except ValueError:
                errors.append(f"Unknown refund method: {method}")
                method_value = None
            if not reason or not reason.strip():
                errors.append("Refund reason is required")

            existing = refunds.list_by_order(order.id)
            if not errors:
                refundable = calculate_refundable_amount(order.total_price, existing)
                if amount > refundable:
                    errors.append(
                        f"Refund amount ({format_money(amount, order.currency)}) exceeds "
                        f"refundable amount ({format_money(refundable, order.currency)})"
                    )
            if errors:
                raise RefundValidationError(errors)

            invoice_id = session.scalar(select(InvoiceModel.id).where(InvoiceModel.order_id == order.id))
            row = refunds.create(
                order_id=order.id,
                invoice_id=invoice_id,
                amount=amount,
                reason=reason.strip(),
                method=method_value,
                now=now_utc(),
            )
            record = RefundRecord.from_model(row)
            notice = _notice(record, order)
            settles_order = would_be_full_refund(order.total_price, amount, existing)

        logger.info(
            "refund created: id=%s order=%s amount=%s settles_order=%s",
            record.id,
            record.order_id,
            record.amount,
            settles_order,
        )
        self._notify(notice)
        return record

    def _transition(self, refund_id: str, expected: RefundStatus, target: RefundStatus) -> tuple[RefundTransition, RefundNotice]:
        with self._scope() as session:
            orders = OrderRepository(session)
            refunds = RefundRepository(session)

            refund = refunds.get(refund_id, for_update=True)
            if refund is None:
                raise NotFoundError("Refund", refund_id)
            if refund.status != expected.value:
                if target is RefundStatus.PROCESSED:
                    raise InvalidStateError(
                        f"Refund must be approved before processing (current status: {refund.status})"
                    )
                raise InvalidStateError(f"Refund is not {expected.value} (current status: {refund.status})")

            order = orders.get(refund.order_id, for_update=True)
            if order is None:
                raise NotFoundError("Order", refund.order_id)

            if expected is RefundStatus.PENDING:
                # Another refund may have been approved since this one was created.
                others = [r for r in refunds.list_by_order(order.id) if r.id != refund.id]
                refundable = calculate_refundable_amount(order.total_price, others)
                if refund.amount > refundable:
                    raise RefundValidationError(
                        [
                            f"Refund amount ({format_money(refund.amount, order.currency)}) exceeds "
                            f"refundable amount ({format_money(refundable, order.currency)})"
                        ]
                    )

            now = now_utc()
            refunds.update_status(refund, target, now)
            order.refund_status = derive_refund_status(order.total_price, refunds.list_by_order(order.id)).value
            order.updated_at = now

            record = RefundRecord.from_model(refund)
            transition = RefundTransition(
                refund=record,
                order_id=order.id,
                order_total=order.total_price,
                order_refund_status=order.refund_status,
            )
            notice = _notice(record, order)

        logger.info(
            "refund %s: id=%s order=%s order_refund_status=%s",
            target.value,
            record.id,
            transition.order_id,
            transition.order_refund_status,
        )
        return transition, notice

    def approve(self, refund_id: str) -> RefundTransition:
        transition, _ = self._transition(refund_id, RefundStatus.PENDING, RefundStatus.APPROVED)
        return transition

    def process(self, refund_id: str) -> RefundTransition:
        # No payment gateway: the state change is the whole effect.
        transition, notice = self._transition(refund_id, RefundStatus.APPROVED, RefundStatus.PROCESSED)
        self._notify(notice)
        return transition

    def get_refund(self, refund_id: str) -> RefundRecord:
        with self._scope() as session:
            row = RefundRepository(session).get(refund_id)
            if row is None:
                raise NotFoundError("Refund", refund_id)
            return RefundRecord.from_model(row)

    def _history(self, order_id: str | None) -> list[RefundHistoryItem]:
        with self._scope() as session:
            rows = RefundRepository(session).list_history(order_id)
            return [
                RefundHistoryItem(
                    refund_id=refund.id,
                    order_id=refund.order_id,
                    amount=refund.amount,
                    reason=refund.reason,
                    status=refund.status,
                    method=refund.method,
                    created_at=refund.created_at,
                    customer_name=order.customer_name,
                    customer_email=order.customer_email,
                )
                for refund, order in rows
            ]

    def list_refunds(self) -> list[RefundHistoryItem]:
        return self._history(None)

    def list_refunds_by_order(self, order_id: str) -> list[RefundHistoryItem]:
        return self._history(order_id)
