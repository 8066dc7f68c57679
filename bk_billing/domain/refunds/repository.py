from __future__ import annotations

from datetime import datetime
from typing import Iterable

from sqlalchemy import Select, desc, select
from sqlalchemy.orm import Session

from bk_billing.domain.enums import RefundStatus
from bk_billing.persistence.models import OrderModel, RefundModel


class RefundRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, refund_id: str, for_update: bool = False) -> RefundModel | None:
        stmt = select(RefundModel).where(RefundModel.id == refund_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.scalar(stmt)

    def list_by_order(self, order_id: str, statuses: Iterable[str] | None = None) -> list[RefundModel]:
        stmt = select(RefundModel).where(RefundModel.order_id == order_id)
        if statuses is not None:
            stmt = stmt.where(RefundModel.status.in_([getattr(s, "value", s) for s in statuses]))
        return list(self.session.scalars(stmt.order_by(RefundModel.created_at.asc())).all())

    def create(
        self,
        order_id: str,
        invoice_id: str | None,
        amount: int,
        reason: str,
        method: str,
        now: datetime,
    ) -> RefundModel:
        row = RefundModel(
            order_id=order_id,
            invoice_id=invoice_id,
            amount=amount,
            reason=reason,
            method=method,
            status=RefundStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def update_status(self, refund: RefundModel, status: RefundStatus, now: datetime) -> RefundModel:
        refund.status = status.value
        refund.updated_at = now
        # Autoflush is off; later aggregate queries must see the new status.
        self.session.flush()
        return refund

    def list_history(self, order_id: str | None = None) -> list[tuple[RefundModel, OrderModel]]:
        stmt: Select[tuple[RefundModel, OrderModel]] = (
            select(RefundModel, OrderModel)
            .join(OrderModel, OrderModel.id == RefundModel.order_id)
            .order_by(desc(RefundModel.created_at))
        )
        if order_id is not None:
            stmt = stmt.where(RefundModel.order_id == order_id)
        return [(refund, order) for refund, order in self.session.execute(stmt).all()]
