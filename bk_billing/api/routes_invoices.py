from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from bk_billing.api.deps import get_invoice_service
from bk_billing.core.clock import iso_z
from bk_billing.core.security import Actor, get_admin
from bk_billing.domain.invoices.builder import InvoiceData
from bk_billing.domain.invoices.service import InvoiceService

router = APIRouter(prefix="/admin", tags=["invoices"])


class InvoiceCreateRequest(BaseModel):
    order_id: str = Field(min_length=1)
    with_pdf: bool = True


def _invoice_payload(invoice: InvoiceData) -> dict:
    address = invoice.billing_address
    return {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "order_id": invoice.order_id,
        "customer": {
            "name": invoice.customer_name,
            "email": invoice.customer_email,
            "phone": invoice.customer_phone,
        },
        "billing_address": {
            "address": address.address,
            "city": address.city,
            "country": address.country,
            "postal_code": address.postal_code,
        },
        "items": [
            {
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "total": item.total,
            }
            for item in invoice.items
        ],
        "subtotal": invoice.subtotal,
        "tax": invoice.tax,
        "shipping": invoice.shipping,
        "total": invoice.total,
        "currency": invoice.currency,
        "payment_method": invoice.payment_method,
        "status": invoice.status,
        "pdf_url": invoice.pdf_url,
        "created_at": iso_z(invoice.created_at),
    }


@router.post("/invoices", status_code=201)
def create_invoice(
    req: InvoiceCreateRequest,
    _: Actor = Depends(get_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    if req.with_pdf:
        invoice = service.create_invoice_with_pdf(req.order_id)
    else:
        invoice = service.create_invoice(req.order_id)
    return _invoice_payload(invoice)


@router.get("/invoices/{invoice_id}")
def get_invoice(
    invoice_id: str,
    _: Actor = Depends(get_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    return _invoice_payload(service.get_invoice(invoice_id))


@router.get("/orders/{order_id}/invoice")
def get_order_invoice(
    order_id: str,
    _: Actor = Depends(get_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    return _invoice_payload(service.get_invoice_by_order(order_id))


@router.post("/invoices/{invoice_id}/pdf")
def regenerate_invoice_pdf(
    invoice_id: str,
    _: Actor = Depends(get_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    return _invoice_payload(service.generate_pdf(invoice_id))


@router.get("/invoices/{invoice_id}/download")
def download_invoice(
    invoice_id: str,
    _: Actor = Depends(get_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice, content = service.read_pdf(invoice_id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="facture-{invoice.invoice_number}.pdf"'},
    )
