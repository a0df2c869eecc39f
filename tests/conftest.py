"""Shared test fixtures and helpers."""

import json
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional

import pytest
from fastapi.testclient import TestClient

from salon.api import create_app
from salon.config import AppConfig, AuthConfig, BusinessConfig, PaymentConfig, StorageConfig
from salon.container import build_container
from salon.errors import PaymentProviderError, ValidationFailedError
from salon.payments.provider import PaymentIntent, ProviderOutcome, RefundReceipt
from salon.schemas.booking_schema import Booking, BookingRequest, BookingStatus, StatusChange
from salon.schemas.payment_schema import PaymentIntentRequest
from salon.storage import build_memory_store

# Monday 19 Oct 2026, 10:00 in New York (EDT, UTC-4). The salon is closed Mondays.
NOW = datetime(2026, 10, 19, 14, 0, tzinfo=timezone.utc)
MONDAY = date(2026, 10, 19)
TUESDAY = date(2026, 10, 20)
WEDNESDAY = date(2026, 10, 21)
SUNDAY = date(2026, 10, 25)

ADMIN_TOKEN = "admin-token"
STYLIST_TOKEN = "stylist-token"
CUSTOMER_TOKEN = "customer-token"
CUSTOMER_EMAIL = "jane@example.com"


class FrozenClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict]] = []
        self.fail = False

    def send(self, event, booking, **details: Any) -> None:
        if self.fail:
            raise RuntimeError("mail relay down")
        self.sent.append((event.value, booking.id, details))

    def events(self, booking_id: Optional[str] = None) -> list[str]:
        return [e for e, bid, _ in self.sent if booking_id is None or bid == booking_id]


class FakePaymentProvider:
    """In-memory stand-in for the Stripe provider."""

    def __init__(self) -> None:
        self.intents: dict[str, dict] = {}
        self.refunds: list[RefundReceipt] = []
        self.fail = False

    def create_intent(self, amount_cents, currency, metadata, receipt_email) -> PaymentIntent:
        if self.fail:
            raise PaymentProviderError("Failed to create payment intent")
        intent_id = f"pi_test_{len(self.intents) + 1}"
        self.intents[intent_id] = {
            "status": "requires_confirmation",
            "amount": amount_cents,
            "metadata": dict(metadata),
        }
        return PaymentIntent(
            id=intent_id, client_secret=f"{intent_id}_secret", status="requires_confirmation"
        )

    def set_status(self, intent_id: str, status: str) -> None:
        self.intents[intent_id]["status"] = status

    def confirm(self, intent_ref: str) -> ProviderOutcome:
        if self.fail:
            raise PaymentProviderError("Failed to confirm payment")
        intent = self.intents[intent_ref]
        charge = f"ch_{intent_ref}" if intent["status"] == "succeeded" else None
        return ProviderOutcome(
            intent_ref=intent_ref, status=intent["status"], charge_id=charge,
            metadata=intent["metadata"],
        )

    def refund(self, intent_ref, amount_cents=None, reason="") -> RefundReceipt:
        if self.fail:
            raise PaymentProviderError("Failed to process refund")
        intent = self.intents[intent_ref]
        already = sum(r.amount_cents for r in self.refunds if r.id.startswith(f"re_{intent_ref}_"))
        amount = amount_cents if amount_cents is not None else intent["amount"] - already
        receipt = RefundReceipt(
            id=f"re_{intent_ref}_{len(self.refunds) + 1}", amount_cents=amount, status="succeeded"
        )
        self.refunds.append(receipt)
        return receipt

    def parse_event(self, payload: bytes, signature: str) -> Any:
        if signature != "valid-signature":
            raise ValidationFailedError("Invalid webhook signature", code="invalid_signature")
        return json.loads(payload)


def make_business_config(**overrides) -> BusinessConfig:
    values = dict(
        name="Test Salon",
        timezone="America/New_York",
        business_days=frozenset({1, 2, 3, 4, 5}),
        opening_time=time(9, 0),
        closing_time=time(18, 0),
        slot_step_minutes=30,
        buffer_minutes=15,
        default_duration_minutes=60,
        cancellation_window_hours=24,
        currency="usd",
    )
    values.update(overrides)
    return BusinessConfig(**values)


def make_request(**overrides) -> BookingRequest:
    """Helper to create a BookingRequest with sensible defaults."""
    values = dict(
        first_name="Jane",
        last_name="Doe",
        email=CUSTOMER_EMAIL,
        phone="(555) 123-4567",
        service_id="precision-cut",
        date=WEDNESDAY,
        time="10:00",
    )
    values.update(overrides)
    return BookingRequest(**values)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def provider():
    return FakePaymentProvider()


@pytest.fixture
def app_config():
    return AppConfig(
        business=make_business_config(),
        payments=PaymentConfig(stripe_secret_key="sk_test", stripe_webhook_secret="whsec_test"),
        storage=StorageConfig(mongodb_url=""),
        auth=AuthConfig(
            api_tokens=(
                f"{ADMIN_TOKEN}:admin,"
                f"{STYLIST_TOKEN}:stylist:sam@salon.test,"
                f"{CUSTOMER_TOKEN}:customer:{CUSTOMER_EMAIL}"
            )
        ),
        cors_origins="http://localhost:3000",
    )


@pytest.fixture
def store():
    return build_memory_store()


@pytest.fixture
def container(app_config, store, provider, notifier, clock):
    return build_container(
        app_config, store=store, provider=provider, notifier=notifier, clock=clock
    )


@pytest.fixture
def client(container):
    return TestClient(create_app(container))


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def pay(container, provider, booking_id: str):
    """Run a booking through intent creation and a successful confirmation."""
    booking = container.bookings.get_booking(booking_id)
    _, intent = container.payments.create_intent(
        PaymentIntentRequest(
            booking_id=booking.id,
            amount=booking.total_cents,
            currency=booking.currency,
            customer_email=booking.email,
        )
    )
    provider.set_status(intent.id, "succeeded")
    return container.payments.confirm_payment(intent.id)


def make_booking(**overrides) -> Booking:
    """Helper to create a stored-shape Booking without going through the service."""
    values = dict(
        id="BK-TEST000001",
        first_name="Jane",
        last_name="Doe",
        email=CUSTOMER_EMAIL,
        phone="5551234567",
        service_id="precision-cut",
        service_name="Precision Cut",
        date=TUESDAY,
        time="10:00",
        duration_minutes=60,
        total_cents=8500,
        history=[StatusChange(status=BookingStatus.PENDING, at=NOW, actor="customer")],
        created_at=NOW,
        updated_at=NOW,
    )
    values.update(overrides)
    return Booking(**values)
