import enum


class OrderStatus(str, enum.Enum):
    PENDING_PAYMENT = "pending_payment"
    PENDING_COD = "pending_cod"
    PAID = "paid"
    PREPARING = "preparing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class OrderRefundStatus(str, enum.Enum):
    NONE = "none"
    PARTIAL = "partial"
    FULL = "full"


class RefundStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PROCESSED = "processed"


class RefundMethod(str, enum.Enum):
    ORIGINAL = "original"
    MANUAL = "manual"
    CASH = "cash"


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    PAID = "paid"


class InvoicePaymentMethod(str, enum.Enum):
    CARD = "card"
    CASH_ON_DELIVERY = "cash_on_delivery"
    BANK_TRANSFER = "bank_transfer"


# Refunds that count against the order total.
COUNTED_REFUND_STATUSES = frozenset({RefundStatus.APPROVED.value, RefundStatus.PROCESSED.value})

REFUND_METHOD_LABELS = {
    RefundMethod.ORIGINAL.value: "Méthode originale",
    RefundMethod.MANUAL.value: "Manuel",
    RefundMethod.CASH.value: "Espèces",
}

PAYMENT_METHOD_LABELS = {
    InvoicePaymentMethod.CARD.value: "Carte bancaire",
    InvoicePaymentMethod.CASH_ON_DELIVERY.value: "Paiement à la livraison",
    InvoicePaymentMethod.BANK_TRANSFER.value: "Virement bancaire",
}
