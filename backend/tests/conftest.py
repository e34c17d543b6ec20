"""
Shared fixtures: a throwaway SQLite database per test, a fake payment
gateway and an app wired to both.
"""
import os
import tempfile

_TEST_DIR = tempfile.mkdtemp(prefix="orderdesk-tests-")

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DIR}/app.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-at-least-32-characters")
os.environ["ENVIRONMENT"] = "test"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "whsec_test"

from collections.abc import AsyncGenerator  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Optional  # noqa: E402

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from orderdesk.core.database import (  # noqa: E402
    Base,
    create_session_factory,
    get_db_session,
    session_scope,
)
from orderdesk.core.security import create_access_token, create_staff_token  # noqa: E402
from orderdesk.models import Order  # noqa: E402
from orderdesk.routers.deps import get_payment_reconciler  # noqa: E402
from orderdesk.services.checkout import BuyerInfo, CartSnapshot  # noqa: E402
from orderdesk.services.order_lifecycle import OrderLifecycle  # noqa: E402
from orderdesk.services.payment_reconciler import PaymentReconciler, ReconcilerConfig  # noqa: E402
from orderdesk.services.pricing import LineItem, price_order  # noqa: E402
from orderdesk.services.razorpay_client import (  # noqa: E402
    GatewayError,
    GatewayOrder,
    GatewayPayment,
)

KEY_ID = "rzp_test_key"
KEY_SECRET = "rzp_test_secret"
WEBHOOK_SECRET = "whsec_test"


class FakeGateway:
    """In-memory stand-in for the payment gateway."""

    def __init__(self) -> None:
        self.orders: dict[str, GatewayOrder] = {}
        self.payments: dict[str, GatewayPayment] = {}
        self.created: list[tuple[GatewayOrder, dict[str, str]]] = []
        self.fail_create = False
        self.fail_fetch = False
        self.fetch_calls = 0

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
    ) -> GatewayOrder:
        if self.fail_create:
            raise GatewayError("gateway unavailable", status_code=503)
        order = GatewayOrder(
            gateway_order_id=f"order_test{len(self.orders) + 1:04d}",
            amount=amount,
            currency=currency,
            receipt=receipt,
        )
        self.orders[order.gateway_order_id] = order
        self.created.append((order, notes))
        return order

    def capture(
        self,
        gateway_order_id: str,
        payment_id: str,
        amount: Optional[int] = None,
        currency: Optional[str] = None,
    ) -> None:
        """Record a payment the way the gateway would after checkout."""
        order = self.orders[gateway_order_id]
        self.payments[payment_id] = GatewayPayment(
            payment_id=payment_id,
            gateway_order_id=gateway_order_id,
            amount=order.amount if amount is None else amount,
            currency=currency or order.currency,
            status="captured",
        )

    async def fetch_payment(self, payment_id: str) -> GatewayPayment:
        self.fetch_calls += 1
        if self.fail_fetch:
            raise GatewayError("gateway unavailable", status_code=503)
        try:
            return self.payments[payment_id]
        except KeyError:
            raise GatewayError("payment not found", status_code=404)


def sample_cart(note: Optional[str] = None) -> CartSnapshot:
    """Two chai and two samosa: 130.00 with no fees."""
    breakdown = price_order(
        [
            LineItem(name="Masala Chai", unit_price=Decimal("40"), quantity=2),
            LineItem(name="Samosa", unit_price=Decimal("25"), quantity=2),
        ]
    )
    return CartSnapshot(breakdown=breakdown, customer_note=note)


SAMPLE_TOTAL = Decimal("130.00")


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so concurrent sessions really contend."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path}/orderdesk.db",
        poolclass=NullPool,
        connect_args={"timeout": 15},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine):
    return create_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as db_session:
        yield db_session


@pytest.fixture
def buyer() -> BuyerInfo:
    return BuyerInfo(name="Asha", phone="9876543210")


@pytest.fixture
def order_factory(session_factory, buyer: BuyerInfo):
    """Place a cash order in its own committed transaction."""

    async def _create(note: Optional[str] = None) -> Order:
        async with session_scope(session_factory) as db_session:
            return await OrderLifecycle(db_session).place_order(
                buyer,
                sample_cart(note),
                currency="INR",
            )

    return _create


@pytest.fixture
def order_loader(session_factory):
    async def _load(order_id) -> Optional[Order]:
        async with session_factory() as db_session:
            return await db_session.get(Order, order_id)

    return _load


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def reconciler_config() -> ReconcilerConfig:
    return ReconcilerConfig(
        key_id=KEY_ID,
        key_secret=KEY_SECRET,
        webhook_secret=WEBHOOK_SECRET,
        currency="INR",
        corroborate_payments=True,
    )


@pytest.fixture
def reconciler(reconciler_config, gateway, session_factory) -> PaymentReconciler:
    return PaymentReconciler(reconciler_config, gateway, session_factory)


@pytest.fixture
def app(session_factory, reconciler) -> FastAPI:
    """Application wired to the per-test database and the fake gateway."""
    from orderdesk.main import app as application

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as db_session:
            try:
                yield db_session
                await db_session.commit()
            except Exception:
                await db_session.rollback()
                raise

    application.dependency_overrides[get_db_session] = override_db_session
    application.dependency_overrides[get_payment_reconciler] = lambda: reconciler
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as http_client:
        yield http_client


@pytest.fixture
def client() -> TestClient:
    """Synchronous client for endpoints that do not touch the database."""
    from orderdesk.main import app as application

    return TestClient(application)


@pytest.fixture
def staff_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_staff_token('counter-1')}"}


@pytest.fixture
def customer_headers() -> dict[str, str]:
    token = create_access_token({"sub": "9876543210", "role": "customer"})
    return {"Authorization": f"Bearer {token}"}
