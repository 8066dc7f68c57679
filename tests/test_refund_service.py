from __future__ import annotations

import logging

import pytest
from sqlalchemy import select

import bk_billing.persistence.pg as pg
from bk_billing.core.clock import now_utc
from bk_billing.domain.errors import InvalidStateError, NotFoundError, RefundValidationError
from bk_billing.domain.refunds import RefundService
from bk_billing.persistence.models import InvoiceModel, RefundModel


def _counted_total(order_id: str) -> int:
    with pg.session_scope() as s:
        rows = s.scalars(select(RefundModel).where(RefundModel.order_id == order_id)).all()
        return sum(r.amount for r in rows if r.status in {"approved", "processed"})


def test_partial_then_full_refund_scenario(make_order, load_order, notifier):
    order_id = make_order(total_price=50000)
    service = RefundService(notifier=notifier)

    refund_a = service.create(order_id, 20000, "Pied de table abîmé", "original")
    assert refund_a.status == "pending"
    assert load_order(order_id).refund_status == "none"

    approved = service.approve(refund_a.id)
    assert approved.refund.status == "approved"
    assert approved.order_refund_status == "partial"
    assert load_order(order_id).refund_status == "partial"

    refund_b = service.create(order_id, 30000, "Commande annulée par le client", "manual")
    assert refund_b.status == "pending"

    service.approve(refund_b.id)
    service.process(refund_a.id)
    final = service.process(refund_b.id)
    assert final.refund.status == "processed"
    assert final.order_refund_status == "full"
    assert load_order(order_id).refund_status == "full"
    assert _counted_total(order_id) == 50000

    with pytest.raises(RefundValidationError) as exc:
        service.create(order_id, 1, "Encore un geste commercial", "cash")
    assert "Order has already been fully refunded" in exc.value.errors


def test_create_rejects_amount_above_refundable(make_order):
    order_id = make_order(total_price=50000)
    service = RefundService()

    first = service.create(order_id, 40000, "Livraison en retard", "original")
    service.approve(first.id)

    with pytest.raises(RefundValidationError) as exc:
        service.create(order_id, 10001, "Rayure", "original")
    assert exc.value.errors == ["Refund amount (100,01 €) exceeds refundable amount (100,00 €)"]

    ok = service.create(order_id, 10000, "Rayure", "original")
    assert ok.amount == 10000


def test_approve_rechecks_refundable_amount(make_order, load_order):
    order_id = make_order(total_price=10000)
    service = RefundService()

    first = service.create(order_id, 7000, "Défaut", "original")
    second = service.create(order_id, 7000, "Défaut", "original")
    service.approve(first.id)

    with pytest.raises(RefundValidationError):
        service.approve(second.id)

    assert service.get_refund(second.id).status == "pending"
    assert load_order(order_id).refund_status == "partial"
    assert _counted_total(order_id) == 7000


def test_create_collects_every_input_error(make_order):
    order_id = make_order(total_price=10000, status="cancelled")

    with pytest.raises(RefundValidationError) as exc:
        RefundService().create(order_id, 0, "   ", "cheque")
    assert exc.value.errors == [
        "Cannot refund a cancelled order",
        "Refund amount must be greater than zero",
        "Unknown refund method: cheque",
        "Refund reason is required",
    ]


def test_process_requires_approval_and_leaves_order_untouched(make_order, load_order):
    order_id = make_order(total_price=10000)
    service = RefundService()
    refund = service.create(order_id, 5000, "Erreur de couleur", "original")

    with pytest.raises(InvalidStateError, match="must be approved before processing"):
        service.process(refund.id)

    assert service.get_refund(refund.id).status == "pending"
    assert load_order(order_id).refund_status == "none"


def test_transitions_are_monotonic(make_order):
    order_id = make_order(total_price=10000)
    service = RefundService()
    refund = service.create(order_id, 5000, "Erreur de couleur", "original")
    service.approve(refund.id)

    with pytest.raises(InvalidStateError, match="current status: approved"):
        service.approve(refund.id)

    service.process(refund.id)
    with pytest.raises(InvalidStateError):
        service.approve(refund.id)
    with pytest.raises(InvalidStateError, match="current status: processed"):
        service.process(refund.id)

    assert service.get_refund(refund.id).status == "processed"


def test_missing_order_and_refund_raise_not_found(configure_test_engine):
    service = RefundService()
    with pytest.raises(NotFoundError, match="Order not found"):
        service.create("no-such-order", 100, "x", "original")
    with pytest.raises(NotFoundError, match="Refund not found"):
        service.approve("no-such-refund")
    with pytest.raises(NotFoundError):
        service.get_refund("no-such-refund")


def test_refund_links_existing_invoice(make_order, session):
    order_id = make_order(total_price=12000)
    invoice = InvoiceModel(
        invoice_number="BK-2026-000777",
        order_id=order_id,
        customer_name="Amina Benali",
        customer_phone="",
        billing_address="12 rue des Cèdres",
        billing_city="Casablanca",
        billing_country="Maroc",
        subtotal=10000,
        tax=2000,
        shipping=0,
        total=12000,
        currency="EUR",
        payment_method="card",
        status="paid",
        created_at=now_utc(),
        updated_at=now_utc(),
    )
    session.add(invoice)
    session.commit()

    refund = RefundService().create(order_id, 1000, "Geste commercial", "original")
    assert refund.invoice_id == invoice.id


def test_notifications_follow_create_and_process_only(make_order, notifier, transport):
    order_id = make_order(total_price=10000)
    service = RefundService(notifier=notifier)

    refund = service.create(order_id, 2500, "Tiroir bloqué", "cash")
    assert transport.recipients() == ["amina@example.com", "admin@bk-agencements.test"]
    assert "25,00 €" in transport.sent[0].text
    assert "Espèces" in transport.sent[0].text

    service.approve(refund.id)
    assert len(transport.sent) == 2

    service.process(refund.id)
    assert len(transport.sent) == 4


def test_notification_failure_does_not_undo_refund(make_order, failing_notifier):
    order_id = make_order(total_price=10000)
    service = RefundService(notifier=failing_notifier)

    refund = service.create(order_id, 1000, "Vis manquantes", "original")
    service.approve(refund.id)
    processed = service.process(refund.id)

    assert processed.refund.status == "processed"
    assert service.get_refund(refund.id).status == "processed"


def test_refund_history_is_newest_first_with_customer(make_order):
    order_id = make_order(total_price=10000, customer_name="Youssef Alami", customer_email="youssef@example.com")
    other_id = make_order(total_price=10000)
    service = RefundService()

    first = service.create(order_id, 1000, "Premier", "original")
    second = service.create(order_id, 2000, "Second", "manual")
    service.create(other_id, 3000, "Autre commande", "original")

    history = service.list_refunds_by_order(order_id)
    assert [item.refund_id for item in history] == [second.id, first.id]
    assert history[0].customer_name == "Youssef Alami"
    assert history[0].customer_email == "youssef@example.com"

    everything = service.list_refunds()
    assert {first.id, second.id} <= {item.refund_id for item in everything}
    assert any(item.order_id == other_id for item in everything)


def test_emails_are_handed_to_the_scheduler_after_commit(make_order, notifier, transport):
    scheduled = []
    order_id = make_order(total_price=10000)
    service = RefundService(notifier=notifier, schedule=lambda func, *args: scheduled.append((func, args)))

    refund = service.create(order_id, 2500, "Tiroir bloqué", "cash")

    # create() returned without touching the mail transport.
    assert transport.sent == []
    assert len(scheduled) == 1
    assert service.get_refund(refund.id).status == "pending"

    func, args = scheduled[0]
    func(*args)
    assert transport.recipients() == ["amina@example.com", "admin@bk-agencements.test"]


def test_create_logs_whether_the_refund_settles_the_order(make_order, caplog):
    order_id = make_order(total_price=10000)
    service = RefundService()

    with caplog.at_level(logging.INFO, logger="bk_billing.domain.refunds.service"):
        partial = service.create(order_id, 4000, "Rayure", "original")
        service.approve(partial.id)
        service.create(order_id, 6000, "Solde", "original")

    created = [r.getMessage() for r in caplog.records if r.getMessage().startswith("refund created")]
    assert created[0].endswith("settles_order=False")
    assert created[1].endswith("settles_order=True")
