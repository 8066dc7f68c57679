from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from bk_billing.domain.enums import InvoicePaymentMethod, InvoiceStatus, OrderStatus
from bk_billing.domain.money import Money
from bk_billing.domain.orders import OrderSnapshot

DEFAULT_VAT_RATE_PERCENT = 20

# Checkout token -> invoice-facing payment method.
PAYMENT_METHOD_MAP = {
    "stripe": InvoicePaymentMethod.CARD.value,
    "card": InvoicePaymentMethod.CARD.value,
    "cod": InvoicePaymentMethod.CASH_ON_DELIVERY.value,
    "cash_on_delivery": InvoicePaymentMethod.CASH_ON_DELIVERY.value,
    "bank_transfer": InvoicePaymentMethod.BANK_TRANSFER.value,
}


@dataclass(frozen=True)
class BillingAddress:
    address: str
    city: str
    country: str
    postal_code: str | None = None


@dataclass(frozen=True)
class InvoiceLine:
    product_name: str
    quantity: int
    unit_price: int
    total: int


@dataclass(frozen=True)
class InvoiceData:
    invoice_number: str
    order_id: str
    customer_name: str
    customer_email: str | None
    customer_phone: str
    billing_address: BillingAddress
    subtotal: int
    tax: int
    shipping: int
    total: int
    currency: str
    payment_method: str
    status: str
    created_at: datetime
    items: list[InvoiceLine] = field(default_factory=list)
    id: str | None = None
    pdf_url: str | None = None


def map_payment_method(token: str | None) -> str:
    return PAYMENT_METHOD_MAP.get((token or "").lower(), InvoicePaymentMethod.CARD.value)


def invoice_status_for(order_status: str) -> str:
    if order_status == OrderStatus.PAID.value:
        return InvoiceStatus.PAID.value
    if order_status in (OrderStatus.PENDING_PAYMENT.value, OrderStatus.PENDING_COD.value):
        return InvoiceStatus.PENDING.value
    return InvoiceStatus.DRAFT.value


def build_invoice(
    order: OrderSnapshot,
    invoice_number: str,
    created_at: datetime,
    vat_rate_percent: int = DEFAULT_VAT_RATE_PERCENT,
    default_currency: str = "EUR",
) -> InvoiceData:
    items = [
        InvoiceLine(
            product_name=line.product_name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            total=line.subtotal,
        )
        for line in order.items
    ]
    zero = Money.zero(order.currency or default_currency)
    subtotal = sum((Money(item.total, zero.currency) for item in items), zero)
    tax = subtotal.percent(vat_rate_percent)
    shipping = zero  # shipping is not modelled yet
    total = subtotal + tax + shipping
    address = order.address_line1
    if order.address_line2:
        address = f"{address}, {order.address_line2}"

    return InvoiceData(
        invoice_number=invoice_number,
        order_id=order.order_id,
        customer_name=order.customer_name,
        customer_email=order.customer_email,
        customer_phone=order.customer_phone or "",
        billing_address=BillingAddress(
            address=address,
            city=order.city,
            country=order.country,
            postal_code=order.postal_code or None,
        ),
        items=items,
        subtotal=subtotal.amount,
        tax=tax.amount,
        shipping=shipping.amount,
        total=total.amount,
        currency=total.currency,
        payment_method=map_payment_method(order.payment_method),
        status=invoice_status_for(order.status),
        created_at=created_at,
    )
