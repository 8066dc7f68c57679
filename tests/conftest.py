from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import bk_billing.persistence.pg as pg
from bk_billing.core.clock import now_utc
from bk_billing.core.config import get_settings
from bk_billing.domain.errors import NotificationError
from bk_billing.notifications import EmailMessage, EmailTransport, NotificationDispatcher
from bk_billing.persistence.models import Base, OrderItemModel, OrderModel, ProductModel

ADMIN_EMAIL = "admin@bk-agencements.test"


class RecordingTransport(EmailTransport):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[EmailMessage] = []

    def send(self, message: EmailMessage) -> str:
        if self.fail:
            raise NotificationError("smtp unavailable")
        self.sent.append(message)
        return f"test-{len(self.sent)}"

    def recipients(self) -> list[str]:
        return [m.to for m in self.sent]


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("db") / "test.sqlite"


@pytest.fixture(scope="session", autouse=True)
def configure_test_engine(test_db_path: Path):
    settings = get_settings()
    settings.invoice_backend = "local"
    settings.invoices_dir = test_db_path.parent / "invoices"
    settings.email_backend = "log"
    settings.admin_notification_email = ADMIN_EMAIL
    settings.auth_enabled = True

    engine = create_engine(
        f"sqlite+pysqlite:///{test_db_path}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    TestSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    pg.engine = engine
    pg.SessionLocal = TestSessionLocal

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def notifier(transport: RecordingTransport) -> NotificationDispatcher:
    return NotificationDispatcher(transport=transport, admin_email=ADMIN_EMAIL)


@pytest.fixture()
def failing_notifier() -> NotificationDispatcher:
    return NotificationDispatcher(transport=RecordingTransport(fail=True), admin_email=ADMIN_EMAIL)


@pytest.fixture()
def client(configure_test_engine, notifier):
    from bk_billing.api.deps import get_notifier
    from bk_billing.main import app

    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def session(configure_test_engine):
    with pg.session_scope() as s:
        yield s


@pytest.fixture()
def auth_headers():
    return {"X-API-Key": get_settings().admin_api_key}


@pytest.fixture()
def make_order(configure_test_engine):
    """Insert an order with its lines; returns the order id.

    ``items`` is a list of ``(product_name, quantity, unit_price)``. When it is
    omitted a single line carrying the whole ``total_price`` is created.
    """

    def _make(
        total_price: int = 50000,
        status: str = "paid",
        items: list[tuple[str, int, int]] | None = None,
        **fields,
    ) -> str:
        now = now_utc()
        values = dict(
            customer_name="Amina Benali",
            customer_email="amina@example.com",
            customer_phone="+212 600 000 000",
            address_line1="12 rue des Cèdres",
            address_line2=None,
            city="Casablanca",
            postal_code="20250",
            country="Maroc",
            total_price=total_price,
            currency="EUR",
            payment_method="stripe",
            status=status,
            refund_status="none",
            created_at=now,
            updated_at=now,
        )
        values.update(fields)
        with pg.session_scope() as s:
            order = OrderModel(**values)
            s.add(order)
            s.flush()
            for name, quantity, unit_price in items or [("Table basse en chêne", 1, total_price)]:
                s.add(
                    OrderItemModel(
                        order_id=order.id,
                        product_name=name,
                        quantity=quantity,
                        unit_price=unit_price,
                        subtotal=quantity * unit_price,
                    )
                )
            return order.id

    return _make


@pytest.fixture()
def make_product(configure_test_engine):
    def _make(name: str, price_cents: int = 0) -> str:
        with pg.session_scope() as s:
            product = ProductModel(name=name, price_cents=price_cents)
            s.add(product)
            s.flush()
            return product.id

    return _make


@pytest.fixture()
def load_order(configure_test_engine):
    def _load(order_id: str) -> OrderModel:
        with pg.session_scope() as s:
            return s.get(OrderModel, order_id)

    return _load
