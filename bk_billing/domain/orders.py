from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from bk_billing.persistence.models import OrderItemModel, OrderModel, ProductModel


@dataclass(frozen=True)
class OrderLine:
    product_name: str
    quantity: int
    unit_price: int
    subtotal: int


@dataclass(frozen=True)
class OrderSnapshot:
    order_id: str
    customer_name: str
    customer_email: str | None
    customer_phone: str | None
    address_line1: str
    address_line2: str | None
    city: str
    postal_code: str | None
    country: str
    total_price: int
    currency: str
    payment_method: str | None
    status: str
    refund_status: str
    items: list[OrderLine] = field(default_factory=list)


class OrderRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, order_id: str, for_update: bool = False) -> OrderModel | None:
        stmt = select(OrderModel).where(OrderModel.id == order_id)
        if for_update:
            # Serializes refund writers per order; SQLite ignores it and relies
            # on its database-level write lock instead.
            stmt = stmt.with_for_update()
        return self.session.scalar(stmt)

    def list_lines(self, order_id: str) -> list[OrderLine]:
        # Product names are read live; prices come from the order line.
        stmt = (
            select(OrderItemModel, ProductModel.name)
            .outerjoin(ProductModel, ProductModel.id == OrderItemModel.product_id)
            .where(OrderItemModel.order_id == order_id)
            .order_by(OrderItemModel.id.asc())
        )
        lines = []
        for item, live_name in self.session.execute(stmt).all():
            lines.append(
                OrderLine(
                    product_name=live_name or item.product_name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    subtotal=item.subtotal,
                )
            )
        return lines

    def snapshot(self, order_id: str) -> OrderSnapshot | None:
        order = self.get(order_id)
        if order is None:
            return None
        return OrderSnapshot(
            order_id=order.id,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            customer_phone=order.customer_phone,
            address_line1=order.address_line1,
            address_line2=order.address_line2,
            city=order.city,
            postal_code=order.postal_code,
            country=order.country,
            total_price=order.total_price,
            currency=order.currency,
            payment_method=order.payment_method,
            status=order.status,
            refund_status=order.refund_status,
            items=self.list_lines(order.id),
        )
