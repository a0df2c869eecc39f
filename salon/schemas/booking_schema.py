"""Booking, availability and audit data models."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from salon.utils import normalize_phone, parse_hhmm

MIN_NAME_LENGTH = 2
MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15


class BookingStatus(str, Enum):
    """Lifecycle status of a booking."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


ACTIVE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


class PaymentState(str, Enum):
    """Payment status as seen from the booking."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially-refunded"


class BookingSource(str, Enum):
    WEBSITE = "website"
    PHONE = "phone"
    WALK_IN = "walk-in"
    REFERRAL = "referral"
    SOCIAL = "social"


class ReminderKind(str, Enum):
    DAY_BEFORE = "24h"
    TWO_HOURS = "2h"


class ReminderMethod(str, Enum):
    EMAIL = "email"
    SMS = "sms"


class ReminderRecord(BaseModel):
    kind: ReminderKind
    sent_at: datetime
    method: ReminderMethod = ReminderMethod.EMAIL


class StatusChange(BaseModel):
    """Append-only audit fact for one lifecycle transition."""
    status: BookingStatus
    at: datetime
    actor: str


class Review(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str = Field(default="", max_length=1000)
    submitted_at: datetime


class Booking(BaseModel):
    """Stored booking record."""
    id: str
    first_name: str
    last_name: str
    email: EmailStr
    phone: str
    service_id: str
    service_name: str
    date: date
    time: str
    duration_minutes: int = Field(gt=0)
    total_cents: int = Field(ge=0)
    currency: str = "usd"
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentState = PaymentState.PENDING
    payment_id: Optional[str] = None
    notes: str = ""
    source: BookingSource = BookingSource.WEBSITE
    is_first_time: bool = True
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    reminders: list[ReminderRecord] = Field(default_factory=list)
    review: Optional[Review] = None
    history: list[StatusChange] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    version: int = 0

    @property
    def customer_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class BookingRequest(BaseModel):
    """Validated booking submission from the website."""
    first_name: str = Field(min_length=MIN_NAME_LENGTH, max_length=100)
    last_name: str = Field(min_length=MIN_NAME_LENGTH, max_length=100)
    email: EmailStr
    phone: str
    service_id: str = Field(min_length=1)
    date: date
    time: str
    notes: str = Field(default="", max_length=500)
    source: BookingSource = BookingSource.WEBSITE

    @field_validator("first_name", "last_name", "notes")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @field_validator("email")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("phone")
    @classmethod
    def _valid_phone(cls, value: str) -> str:
        cleaned = normalize_phone(value)
        digits = cleaned.lstrip("+")
        if not MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
            raise ValueError("Valid phone number is required")
        return cleaned

    @field_validator("time")
    @classmethod
    def _valid_time(cls, value: str) -> str:
        try:
            return parse_hhmm(value).strftime("%H:%M")
        except ValueError:
            raise ValueError("Time must be HH:MM (24-hour)") from None


class CancelRequest(BaseModel):
    reason: str = Field(default="Customer cancellation", max_length=500)


class StatusUpdateRequest(BaseModel):
    status: str


class ReviewRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str = Field(default="", max_length=1000)


class AvailabilityResponse(BaseModel):
    """Open start times for one day."""
    success: bool = True
    date: date
    service_id: Optional[str] = None
    available_slots: list[str] = Field(default_factory=list)
    closed_reason: Optional[str] = None
    business_hours: str = ""
    business_days: str = ""


class BookingStats(BaseModel):
    total_bookings: int = 0
    total_revenue_cents: int = 0
    confirmed_bookings: int = 0
    completed_bookings: int = 0
    cancelled_bookings: int = 0
