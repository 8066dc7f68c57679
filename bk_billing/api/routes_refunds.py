from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from bk_billing.api.deps import get_refund_service
from bk_billing.core.clock import iso_z
from bk_billing.core.security import Actor, get_admin
from bk_billing.domain.enums import RefundMethod
from bk_billing.domain.refunds import RefundHistoryItem, RefundRecord, RefundService, RefundTransition

router = APIRouter(prefix="/admin", tags=["refunds"])


class RefundCreateRequest(BaseModel):
    order_id: str = Field(min_length=1)
    amount: int = Field(description="Amount in cents")
    reason: str
    method: str = RefundMethod.ORIGINAL.value


def _refund_payload(refund: RefundRecord) -> dict:
    return {
        "id": refund.id,
        "order_id": refund.order_id,
        "invoice_id": refund.invoice_id,
        "amount": refund.amount,
        "reason": refund.reason,
        "method": refund.method,
        "status": refund.status,
        "created_at": iso_z(refund.created_at),
        "updated_at": iso_z(refund.updated_at),
    }


def _transition_payload(transition: RefundTransition) -> dict:
    return {
        "refund": _refund_payload(transition.refund),
        "order": {
            "id": transition.order_id,
            "total_price": transition.order_total,
            "refund_status": transition.order_refund_status,
        },
    }


def _history_payload(items: list[RefundHistoryItem]) -> dict:
    return {
        "count": len(items),
        "refunds": [
            {
                "id": item.refund_id,
                "order_id": item.order_id,
                "amount": item.amount,
                "reason": item.reason,
                "status": item.status,
                "method": item.method,
                "created_at": iso_z(item.created_at),
                "customer": {"name": item.customer_name, "email": item.customer_email},
            }
            for item in items
        ],
    }


@router.get("/refunds")
def list_refunds(
    _: Actor = Depends(get_admin),
    service: RefundService = Depends(get_refund_service),
):
    return _history_payload(service.list_refunds())


@router.post("/refunds", status_code=201)
def create_refund(
    req: RefundCreateRequest,
    _: Actor = Depends(get_admin),
    service: RefundService = Depends(get_refund_service),
):
    refund = service.create(req.order_id, req.amount, req.reason, req.method)
    return _refund_payload(refund)


@router.get("/refunds/{refund_id}")
def get_refund(
    refund_id: str,
    _: Actor = Depends(get_admin),
    service: RefundService = Depends(get_refund_service),
):
    return _refund_payload(service.get_refund(refund_id))


@router.get("/orders/{order_id}/refunds")
def list_order_refunds(
    order_id: str,
    _: Actor = Depends(get_admin),
    service: RefundService = Depends(get_refund_service),
):
    return _history_payload(service.list_refunds_by_order(order_id))


@router.post("/refunds/{refund_id}/approve")
def approve_refund(
    refund_id: str,
    _: Actor = Depends(get_admin),
    service: RefundService = Depends(get_refund_service),
):
    return _transition_payload(service.approve(refund_id))


@router.post("/refunds/{refund_id}/process")
def process_refund(
    refund_id: str,
    _: Actor = Depends(get_admin),
    service: RefundService = Depends(get_refund_service),
):
    return _transition_payload(service.process(refund_id))
