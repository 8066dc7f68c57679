from __future__ import annotations

import logging
import time
from contextlib import AbstractContextManager
from dataclasses import replace
from datetime import datetime
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bk_billing.core.clock import now_utc
from bk_billing.core.config import get_settings
from bk_billing.domain.errors import BillingError, NotFoundError, StorageError
from bk_billing.domain.invoices.builder import (
    DEFAULT_VAT_RATE_PERCENT,
    BillingAddress,
    InvoiceData,
    InvoiceLine,
    build_invoice,
)
from bk_billing.domain.invoices.numbering import generate_invoice_number
from bk_billing.domain.orders import OrderRepository
from bk_billing.notifications import InvoiceNotice, NotificationDispatcher, Scheduler, run_inline
from bk_billing.persistence import pg
from bk_billing.persistence.models import InvoiceItemModel, InvoiceModel
from bk_billing.rendering.layout import CompanyInfo
from bk_billing.rendering.pdf import generate_invoice_pdf
from bk_billing.storage.invoices import InvoiceStore, build_invoice_store

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]
Renderer = Callable[..., bytes]


def _to_data(session: Session, row: InvoiceModel) -> InvoiceData:
    items = session.scalars(
        select(InvoiceItemModel)
        .where(InvoiceItemModel.invoice_id == row.id)
        .order_by(InvoiceItemModel.position.asc())
    ).all()
    return InvoiceData(
        id=row.id,
        invoice_number=row.invoice_number,
        order_id=row.order_id,
        customer_name=row.customer_name,
        customer_email=row.customer_email,
        customer_phone=row.customer_phone,
        billing_address=BillingAddress(
            address=row.billing_address,
            city=row.billing_city,
            country=row.billing_country,
            postal_code=row.billing_postal_code,
        ),
        items=[
            InvoiceLine(
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total=item.total,
            )
            for item in items
        ],
        subtotal=row.subtotal,
        tax=row.tax,
        shipping=row.shipping,
        total=row.total,
        currency=row.currency,
        payment_method=row.payment_method,
        status=row.status,
        created_at=row.created_at,
        pdf_url=row.pdf_url,
    )


class InvoiceService:
    """Invoice pipeline: snapshot the order, render the PDF, store it, notify.

    The invoice row commits before any PDF work starts. A rendering or storage
    failure leaves ``pdf_url`` unset and can be retried with ``generate_pdf``.
    Emails go out once, when the invoice is first created, through ``schedule``.
    """

    def __init__(
        self,
        store: InvoiceStore,
        notifier: NotificationDispatcher | None = None,
        session_factory: SessionFactory | None = None,
        renderer: Renderer = generate_invoice_pdf,
        clock: Callable[[], datetime] = now_utc,
        company: CompanyInfo | None = None,
        vat_rate_percent: int = DEFAULT_VAT_RATE_PERCENT,
        default_currency: str = "EUR",
        number_prefix: str = "BK",
        number_attempts: int = 3,
        schedule: Scheduler = run_inline,
    ):
        self.store = store
        self.notifier = notifier
        self._session_factory = session_factory
        self.renderer = renderer
        self.clock = clock
        self.company = company or CompanyInfo()
        self.vat_rate_percent = vat_rate_percent
        self.default_currency = default_currency
        self.number_prefix = number_prefix
        self.number_attempts = number_attempts
        self.schedule = schedule

    @classmethod
    def from_settings(
        cls,
        notifier: NotificationDispatcher | None = None,
        schedule: Scheduler = run_inline,
    ) -> "InvoiceService":
        settings = get_settings()
        return cls(
            store=build_invoice_store(),
            notifier=notifier,
            company=CompanyInfo(
                name=settings.company_name,
                tagline=settings.company_tagline,
                country=settings.company_country,
            ),
            vat_rate_percent=settings.vat_rate_percent,
            default_currency=settings.default_currency,
            number_prefix=settings.invoice_number_prefix,
            number_attempts=settings.invoice_number_attempts,
            schedule=schedule,
        )

    def _scope(self) -> AbstractContextManager[Session]:
        if self._session_factory is not None:
            return self._session_factory()
        return pg.session_scope()

    def _allocate_number(self, session: Session) -> str:
        for attempt in range(1, self.number_attempts + 1):
            number = generate_invoice_number(self.clock(), prefix=self.number_prefix)
            taken = session.scalar(select(InvoiceModel.id).where(InvoiceModel.invoice_number == number))
            if taken is None:
                return number
            logger.warning("invoice number collision: %s (attempt %d/%d)", number, attempt, self.number_attempts)
            # The sequence is millisecond based; wait for the next tick.
            time.sleep(0.001)
        raise BillingError(f"could not allocate a unique invoice number after {self.number_attempts} attempts")

    def create_invoice(self, order_id: str) -> InvoiceData:
        invoice, _ = self._create_or_get(order_id)
        return invoice

    def _existing(self, order_id: str) -> InvoiceData | None:
        with self._scope() as session:
            row = session.scalar(select(InvoiceModel).where(InvoiceModel.order_id == order_id))
            if row is None:
                return None
            logger.info("order %s already invoiced as %s", order_id, row.invoice_number)
            return _to_data(session, row)

    def _create_or_get(self, order_id: str) -> tuple[InvoiceData, bool]:
        """Return the order's invoice and whether this call created it."""
        existing = self._existing(order_id)
        if existing is not None:
            return existing, False
        try:
            invoice = self._insert(order_id)
        except IntegrityError as exc:
            # Lost the race on invoices.order_id to a concurrent request.
            existing = self._existing(order_id)
            if existing is None:
                raise BillingError(f"could not create invoice for order {order_id}: {exc.orig}") from exc
            return existing, False
        logger.info("invoice created: %s order=%s total=%s", invoice.invoice_number, order_id, invoice.total)
        return invoice, True

    def _insert(self, order_id: str) -> InvoiceData:
        with self._scope() as session:
            snapshot = OrderRepository(session).snapshot(order_id)
            if snapshot is None:
                raise NotFoundError("Order", order_id)

            invoice = build_invoice(
                snapshot,
                invoice_number=self._allocate_number(session),
                created_at=self.clock(),
                vat_rate_percent=self.vat_rate_percent,
                default_currency=self.default_currency,
            )
            row = InvoiceModel(
                invoice_number=invoice.invoice_number,
                order_id=invoice.order_id,
                customer_name=invoice.customer_name,
                customer_email=invoice.customer_email,
                customer_phone=invoice.customer_phone,
                billing_address=invoice.billing_address.address,
                billing_city=invoice.billing_address.city,
                billing_country=invoice.billing_address.country,
                billing_postal_code=invoice.billing_address.postal_code,
                subtotal=invoice.subtotal,
                tax=invoice.tax,
                shipping=invoice.shipping,
                total=invoice.total,
                currency=invoice.currency,
                payment_method=invoice.payment_method,
                status=invoice.status,
                created_at=invoice.created_at,
                updated_at=invoice.created_at,
            )
            session.add(row)
            session.flush()
            for position, item in enumerate(invoice.items):
                session.add(
                    InvoiceItemModel(
                        invoice_id=row.id,
                        position=position,
                        product_name=item.product_name,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        total=item.total,
                    )
                )
            session.flush()
            return replace(invoice, id=row.id)

    def get_invoice(self, invoice_id: str) -> InvoiceData:
        with self._scope() as session:
            row = session.get(InvoiceModel, invoice_id)
            if row is None:
                raise NotFoundError("Invoice", invoice_id)
            return _to_data(session, row)

    def get_invoice_by_order(self, order_id: str) -> InvoiceData:
        with self._scope() as session:
            row = session.scalar(select(InvoiceModel).where(InvoiceModel.order_id == order_id))
            if row is None:
                raise NotFoundError("Invoice for order", order_id)
            return _to_data(session, row)

    def generate_pdf(self, invoice_id: str) -> InvoiceData:
        invoice = self.get_invoice(invoice_id)
        try:
            data = self.renderer(invoice, company=self.company, vat_rate_percent=self.vat_rate_percent)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"Failed to generate PDF for {invoice.invoice_number}: {exc}") from exc
        url = self.store.save_pdf(data, invoice.invoice_number)

        with self._scope() as session:
            row = session.get(InvoiceModel, invoice_id)
            if row is None:
                raise NotFoundError("Invoice", invoice_id)
            row.pdf_url = url
            row.updated_at = self.clock()

        logger.info("invoice pdf stored: %s -> %s (%d bytes)", invoice.invoice_number, url, len(data))
        return replace(invoice, pdf_url=url)

    def read_pdf(self, invoice_id: str) -> tuple[InvoiceData, bytes]:
        invoice = self.get_invoice(invoice_id)
        if not invoice.pdf_url or not self.store.pdf_exists(invoice.invoice_number):
            raise NotFoundError("Invoice PDF", invoice.invoice_number)
        return invoice, self.store.read_pdf(invoice.invoice_number)

    def create_invoice_with_pdf(self, order_id: str) -> InvoiceData:
        invoice, created = self._create_or_get(order_id)
        if invoice.pdf_url:
            return invoice

        try:
            invoice = self.generate_pdf(invoice.id)
        except StorageError:
            logger.exception("pdf generation failed for invoice %s; pdf_url left unset", invoice.invoice_number)

        # Retries only attach the PDF; the customer was emailed on creation.
        if created and self.notifier is not None:
            notice = InvoiceNotice(
                invoice_number=invoice.invoice_number,
                customer_name=invoice.customer_name,
                customer_email=invoice.customer_email,
                total=invoice.total,
                currency=invoice.currency,
                created_at=invoice.created_at,
                pdf_url=invoice.pdf_url,
                pdf_path=self.store.get_pdf_path(invoice.invoice_number) if invoice.pdf_url else None,
            )
            self.schedule(self._deliver, notice)
        return invoice

    def _deliver(self, notice: InvoiceNotice) -> None:
        for result in self.notifier.notify_invoice(notice):
            if not result.success:
                logger.warning("invoice %s notification not delivered: %s", notice.invoice_number, result.error)
