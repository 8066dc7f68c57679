from bk_billing.domain.refunds.service import (
    RefundHistoryItem,
    RefundRecord,
    RefundService,
    RefundTransition,
)
from bk_billing.domain.refunds.validation import (
    RefundValidation,
    calculate_refundable_amount,
    derive_refund_status,
    validate_refund,
    would_be_full_refund,
)

__all__ = [
    "RefundHistoryItem",
    "RefundRecord",
    "RefundService",
    "RefundTransition",
    "RefundValidation",
    "calculate_refundable_amount",
    "derive_refund_status",
    "validate_refund",
    "would_be_full_refund",
]
