"""
Shared fixtures: an in-memory database per test, fixed clock values and fake
gateway / notification collaborators.
"""
import time
from datetime import datetime, date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import init_db
from app.core.dependencies import Actor
from app.core.exceptions import GatewayError
from app.features.violation.schema import ViolationCreate
from app.features.violation.service import ViolationService
from app.models.enums import UserRole, VehicleType, ViolationType, PaymentMethod
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.payment_gateways import PaymentGatewayAdapter, ChargeResult, VerifyResult, CHARGE_PAID

NOW = datetime(2024, 3, 15, 10, 0, 0)
VIOLATION_DATE = date(2024, 3, 10)

ENFORCER = Actor(id="enf-1", role=UserRole.ENFORCER, name="Officer Cruz", badge_number="B-1001")
OTHER_ENFORCER = Actor(id="enf-2", role=UserRole.ENFORCER, name="Officer Reyes", badge_number="B-1002")
ADMIN = Actor(id="admin-1", role=UserRole.ADMIN, name="Admin Santos", badge_number="A-1")
CITIZEN = Actor(id="cit-1", role=UserRole.CITIZEN, name="Juan Dela Cruz")


# =======================
# FAKE COLLABORATORS
# =======================

class RecordingDispatcher(NotificationDispatcher):
    def __init__(self):
        self.sent = []

    def send(self, message):
        self.sent.append(message)


class FailingDispatcher(NotificationDispatcher):
    def send(self, message):
        raise RuntimeError("SMS provider is down")


class FakeGateway(PaymentGatewayAdapter):
    """Gateway double with a scripted charge / verify outcome."""

    provider_name = "Fake"

    def __init__(self, status=CHARGE_PAID, error=None, verify_status=CHARGE_PAID, verify_error=None, delay=0):
        self.status = status
        self.error = error
        self.verify_status = verify_status
        self.verify_error = verify_error
        self.delay = delay
        self.charges = []
        self.verifications = []

    def charge(self, violation_ref, amount, payer, payment_id=None):
        self.charges.append((violation_ref, amount, payer, payment_id))
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        n = len(self.charges)
        return ChargeResult(
            transaction_id=f"TX{n:04d}",
            reference=f"REF{n:04d}",
            raw_response={"status": self.status, "card_last4": "4242"},
            status=self.status,
            redirect_url=f"https://pay.example/checkout/{n}",
        )

    def verify(self, transaction_id):
        self.verifications.append(transaction_id)
        if self.verify_error:
            raise self.verify_error
        return VerifyResult(status=self.verify_status, raw_response={"status": self.verify_status})


# =======================
# DATABASE FIXTURES
# =======================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# =======================
# DOMAIN FIXTURES
# =======================

@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def gateways(gateway):
    return {PaymentMethod.GCASH: gateway, PaymentMethod.PAYMONGO: gateway}


@pytest.fixture
def violation_input():
    """Factory for valid ViolationCreate payloads with per-test overrides."""
    def build(**overrides):
        data = dict(
            plate_number="abc1234",
            vehicle_type=VehicleType.CAR,
            driver_name="Juan Dela Cruz",
            driver_license_number="N01-23-456789",
            driver_phone="+639171234567",
            violation_type=ViolationType.SPEEDING,
            violation_description="Driving 80 kph in a 40 kph school zone",
            violation_location="Rizal Avenue, Manila",
            violation_date=VIOLATION_DATE,
            violation_time="14:30",
            base_fine=Decimal("500.00"),
        )
        data.update(overrides)
        return ViolationCreate(**data)
    return build


@pytest.fixture
def violation(db, violation_input):
    """A pending violation issued at NOW by ENFORCER."""
    return ViolationService.create_violation(db, violation_input(), ENFORCER, now=NOW)


@pytest.fixture
def gateway_error():
    return GatewayError("Card declined", gateway_code="card_declined")
