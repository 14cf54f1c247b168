"""
Shared fixtures.

Points the app at an in-memory SQLite database before anything from
servicehub is imported, and replaces Razorpay with a fake gateway that signs
callbacks with a known secret.
"""
import hmac
import os
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RAZORPAY_KEY_SECRET"] = "test_gateway_secret"
os.environ["BOOKING_EXPIRY_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient

from servicehub.api.app import app
from servicehub.lib.dates import utcnow
from servicehub.lib.db import SessionLocal, drop_db, get_db, init_db
from servicehub.lib.jwt import create_access_token
from servicehub.lib.metrics import reset_metrics
from servicehub.lib.payment_gateway import PaymentGatewayError, compute_signature, get_payment_gateway
import servicehub.models  # noqa: F401
from servicehub.models.services import Service
from servicehub.models.users import User, UserRole
from servicehub.services.booking_service import AddressData, CreateBookingData


GATEWAY_SECRET = "test_gateway_secret"


class FakeGateway:
    """In-memory stand-in for Razorpay."""

    def __init__(self):
        self.orders = []
        self.fail = False

    def create_order(self, amount_minor_units: int, currency: str, receipt: str) -> dict:
        if self.fail:
            raise PaymentGatewayError("gateway unavailable")
        order = {
            "id": f"order_{uuid4().hex[:14]}",
            "entity": "order",
            "amount": amount_minor_units,
            "currency": currency,
            "receipt": receipt,
            "status": "created",
        }
        self.orders.append(order)
        return order

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not (order_id and payment_id and signature):
            return False
        return hmac.compare_digest(compute_signature(GATEWAY_SECRET, order_id, payment_id), signature)

    def sign(self, order_id: str, payment_id: str) -> str:
        return compute_signature(GATEWAY_SECRET, order_id, payment_id)


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def db_session():
    """Fresh schema and session per test."""
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        drop_db()


@pytest.fixture
def gateway():
    return FakeGateway()


def _make_user(db, role: UserRole, name: str, active: bool = True) -> User:
    user = User(
        name=name,
        email=f"{name.lower().replace(' ', '.')}.{uuid4().hex[:6]}@example.com",
        phone="9876543210",
        role=role,
        is_active=active,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def customer(db_session):
    return _make_user(db_session, UserRole.CUSTOMER, "Asha Customer")


@pytest.fixture
def provider(db_session):
    return _make_user(db_session, UserRole.PROVIDER, "Ravi Provider")


@pytest.fixture
def admin(db_session):
    return _make_user(db_session, UserRole.ADMIN, "Meera Admin")


@pytest.fixture
def make_user(db_session):
    def factory(role: UserRole = UserRole.CUSTOMER, name: str = "Other User", active: bool = True) -> User:
        return _make_user(db_session, role, name, active)
    return factory


@pytest.fixture
def service(db_session, provider):
    svc = Service(
        provider_id=provider.id,
        name="Deep Cleaning",
        category="cleaning",
        description="Full home deep cleaning",
        price=Decimal("500.00"),
        duration_minutes=120,
        is_active=True,
    )
    db_session.add(svc)
    db_session.commit()
    return svc


def booking_payload(service, hours_ahead: float = 24, **overrides) -> CreateBookingData:
    """Valid booking request for the given service."""
    data = {
        "service_id": service.id,
        "booking_date": utcnow() + timedelta(hours=hours_ahead),
        "time_slot": "10:00-12:00",
        "address": AddressData(
            street="12 MG Road",
            city="Bengaluru",
            state="Karnataka",
            pincode="560001",
            landmark="Near metro",
        ),
        "customer_notes": "Please bring ladder",
    }
    data.update(overrides)
    return CreateBookingData(**data)


@pytest.fixture
def booking_data():
    return booking_payload


def auth_headers(user: User) -> dict:
    token = create_access_token(str(user.id), user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(name="auth_headers")
def auth_headers_fixture():
    return auth_headers


@pytest.fixture
def client(db_session, gateway):
    """TestClient sharing the test session and the fake gateway with the app."""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
