"""Tests for request validation on the booking and payment models."""

import pytest
from pydantic import ValidationError

from salon.schemas.payment_schema import Payment, RefundRecord, RefundRequest
from salon.schemas.service_schema import Service
from tests.conftest import NOW, make_request


class TestBookingRequest:
    def test_normalizes_fields(self):
        request = make_request(first_name="  Jane ", email="Jane@Example.COM", phone="+1 (555) 123-4567", time="9:30")
        assert request.first_name == "Jane"
        assert request.email == "jane@example.com"
        assert request.phone == "+15551234567"
        assert request.time == "09:30"

    def test_short_name_rejected(self):
        with pytest.raises(ValidationError):
            make_request(first_name="J")

    @pytest.mark.parametrize("phone", ["12345", "1234567890123456", "call me"])
    def test_bad_phone_rejected(self, phone):
        with pytest.raises(ValidationError):
            make_request(phone=phone)

    @pytest.mark.parametrize("value", ["25:00", "noon", "10"])
    def test_bad_time_rejected(self, value):
        with pytest.raises(ValidationError):
            make_request(time=value)

    def test_notes_length_limited(self):
        with pytest.raises(ValidationError):
            make_request(notes="x" * 501)


class TestPaymentModels:
    def test_refund_amount_positive(self):
        with pytest.raises(ValidationError):
            RefundRequest(payment_id="PAY-1", amount=0)

    def test_refundable_cents(self):
        payment = Payment(
            id="PAY-1", booking_id="BK-1", provider_ref="pi_1", amount_cents=8500, currency="usd",
            customer_email="jane@example.com", created_at=NOW, updated_at=NOW,
            refunds=[RefundRecord(id="re_1", amount_cents=2000, refunded_at=NOW)],
        )
        assert payment.refunded_cents == 2000
        assert payment.refundable_cents == 6500


class TestServiceModel:
    def test_slug_id_required(self):
        with pytest.raises(ValidationError):
            Service(id="Bad Id", name="x", price_cents=100, duration_minutes=30)

    def test_duration_bounds(self):
        with pytest.raises(ValidationError):
            Service(id="quick", name="Quick", price_cents=100, duration_minutes=5)
