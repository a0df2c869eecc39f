"""Payment correlation data models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class PaymentStatus(str, Enum):
    """Mirror of the provider's lifecycle."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class RefundRecord(BaseModel):
    id: str
    amount_cents: int = Field(gt=0)
    reason: str = ""
    refunded_at: datetime
    refunded_by: Optional[str] = None


class Payment(BaseModel):
    """Local record correlating a booking with a provider transaction."""
    id: str
    booking_id: str
    provider_ref: str
    amount_cents: int = Field(ge=0)
    currency: str
    status: PaymentStatus = PaymentStatus.PENDING
    refunds: list[RefundRecord] = Field(default_factory=list)
    paid_at: Optional[datetime] = None
    charge_id: Optional[str] = None
    customer_email: str
    customer_name: str = ""
    created_at: datetime
    updated_at: datetime
    version: int = 0

    @property
    def refunded_cents(self) -> int:
        return sum(r.amount_cents for r in self.refunds)

    @property
    def refundable_cents(self) -> int:
        return self.amount_cents - self.refunded_cents


class PaymentIntentRequest(BaseModel):
    booking_id: str = Field(min_length=1)
    amount: int = Field(ge=0, description="Amount in the smallest currency unit")
    currency: str = Field(default="usd", min_length=3, max_length=3)
    customer_email: EmailStr
    customer_name: str = ""


class PaymentIntentResponse(BaseModel):
    success: bool = True
    client_secret: Optional[str] = None
    payment_intent_id: str
    payment_id: str


class ConfirmPaymentRequest(BaseModel):
    payment_intent_id: str = Field(min_length=1)


class RefundRequest(BaseModel):
    payment_id: str = Field(min_length=1)
    amount: Optional[int] = Field(default=None, gt=0, description="Cents; omit for the full remainder")
    reason: str = Field(default="requested_by_customer", max_length=500)
