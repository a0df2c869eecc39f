"""
Payment correlation: tie a booking to a provider transaction and fold the
provider's outcomes into booking state.

Synchronous confirmation and asynchronous webhook events both end in
``record_payment_outcome``, keyed by the provider transaction id. The
payment store claims the pending -> succeeded change atomically, so
duplicate deliveries never produce a second confirmation or audit fact.
"""

import uuid
from datetime import datetime
from typing import Any, Callable, Optional

from salon.bookings.lifecycle import BookingLifecycle, LifecycleTrigger
from salon.bookings.service import save_with_retry
from salon.errors import (
    AlreadyPaidError,
    AmountMismatchError,
    ConcurrentUpdateError,
    InvalidTransitionError,
    NotFoundError,
    RefundNotAllowedError,
    ValidationFailedError,
)
from salon.logging_context import get_request_logger
from salon.notifications import NotificationEvent, Notifier, notify_safely
from salon.payments.provider import PaymentIntent, PaymentProvider, field_of
from salon.schemas.booking_schema import Booking, BookingStatus, PaymentState
from salon.schemas.payment_schema import (
    Payment,
    PaymentIntentRequest,
    PaymentStatus,
    RefundRecord,
)
from salon.storage.base import PaymentQuery, Store
from salon.utils import utcnow

logger = get_request_logger(__name__)

# Provider statuses that end an attempt unsuccessfully. Anything not listed
# here or as success (processing, requires_action, ...) is still in flight.
FAILED_PROVIDER_STATUSES = frozenset({"failed", "requires_payment_method", "canceled"})
SUCCEEDED_PROVIDER_STATUS = "succeeded"

WEBHOOK_OUTCOMES = {
    "payment_intent.succeeded": SUCCEEDED_PROVIDER_STATUS,
    "payment_intent.payment_failed": "failed",
}


def new_payment_id() -> str:
    return f"PAY-{uuid.uuid4().hex[:10].upper()}"


class PaymentCorrelator:
    """Owns the Payment records and their effect on bookings."""

    def __init__(
        self,
        store: Store,
        provider: PaymentProvider,
        lifecycle: BookingLifecycle,
        notifier: Notifier,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._provider = provider
        self._lifecycle = lifecycle
        self._notifier = notifier
        self._clock = clock

    # ------------------------------------------------------------------ #
    # Intent creation
    # ------------------------------------------------------------------ #

    def create_intent(self, request: PaymentIntentRequest) -> tuple[Payment, PaymentIntent]:
        """
        Start a payment for a pending booking.

        Raises:
            NotFoundError: Unknown booking.
            AlreadyPaidError: The booking has already been paid.
            InvalidTransitionError: The booking is no longer pending.
            AmountMismatchError: Amount or currency differs from the booking.
            PaymentProviderError: The provider call failed; nothing was stored.
        """
        booking = self._get_booking(request.booking_id)
        if booking.payment_status in (PaymentState.PAID, PaymentState.PARTIALLY_REFUNDED):
            raise AlreadyPaidError("Booking is already paid")
        if booking.status != BookingStatus.PENDING:
            raise InvalidTransitionError(f"Booking is {booking.status.value} and cannot be paid")
        if request.amount != booking.total_cents:
            raise AmountMismatchError("Payment amount does not match booking total")
        if request.currency.lower() != booking.currency.lower():
            raise AmountMismatchError(f"Payment currency must be {booking.currency}")

        intent = self._provider.create_intent(
            amount_cents=booking.total_cents,
            currency=booking.currency,
            metadata={
                "booking_id": booking.id,
                "customer_name": request.customer_name or booking.customer_name,
                "service_name": booking.service_name,
            },
            receipt_email=request.customer_email,
        )

        now = self._clock()
        payment = Payment(
            id=new_payment_id(),
            booking_id=booking.id,
            provider_ref=intent.id,
            amount_cents=booking.total_cents,
            currency=booking.currency,
            customer_email=request.customer_email,
            customer_name=request.customer_name or booking.customer_name,
            created_at=now,
            updated_at=now,
        )
        self._store.payments.insert(payment)

        def link(fresh: Booking) -> bool:
            fresh.payment_id = payment.id
            fresh.payment_status = PaymentState.PENDING
            fresh.updated_at = now
            return True

        save_with_retry(self._store, booking.id, link)
        logger.info("Payment %s (%s) started for booking %s", payment.id, intent.id, booking.id)
        return payment, intent

    # ------------------------------------------------------------------ #
    # Outcomes
    # ------------------------------------------------------------------ #

    def confirm_payment(self, provider_ref: str) -> tuple[Booking, Payment]:
        """Ask the provider how an intent ended and record it. Safe to repeat."""
        payment = self._get_payment_by_ref(provider_ref)
        outcome = self._provider.confirm(provider_ref)
        return self.record_payment_outcome(
            payment.booking_id, outcome.status, provider_ref, charge_id=outcome.charge_id
        )

    def handle_event(self, event: Any) -> Optional[tuple[Booking, Payment]]:
        """Apply a verified provider notification. Unknown event types are ignored."""
        event_type = event["type"]
        provider_status = WEBHOOK_OUTCOMES.get(event_type)
        if provider_status is None:
            logger.debug("Ignoring provider event %s", event_type)
            return None
        intent = event["data"]["object"]
        payment = self._store.payments.get_by_provider_ref(intent["id"])
        if payment is None:
            logger.warning("Provider event %s for unknown intent %s", event_type, intent["id"])
            return None
        charge_id = field_of(intent, "latest_charge")
        return self.record_payment_outcome(
            payment.booking_id, provider_status, intent["id"], charge_id=charge_id
        )

    def record_payment_outcome(
        self,
        booking_id: str,
        provider_status: str,
        provider_ref: str,
        charge_id: Optional[str] = None,
    ) -> tuple[Booking, Payment]:
        """
        Fold a provider-reported outcome into payment and booking state.

        Succeeded confirms the booking (once); failed marks the payment
        failed and leaves the booking pending so the customer can retry.
        """
        payment = self._get_payment_by_ref(provider_ref)
        if payment.booking_id != booking_id:
            raise ValidationFailedError("Payment does not belong to this booking")

        if provider_status == SUCCEEDED_PROVIDER_STATUS:
            claimed = self._store.payments.mark_succeeded(provider_ref, self._clock(), charge_id)
            if claimed is None:
                logger.info("Payment %s already recorded as %s", payment.id, payment.status.value)
            else:
                payment = claimed
                logger.info("Payment %s succeeded for booking %s", payment.id, booking_id)
            booking = self._confirm_booking(booking_id, payment)
            return booking, self._store.payments.get(payment.id) or payment

        if provider_status in FAILED_PROVIDER_STATUSES:
            return self._record_failure(booking_id, payment)

        logger.debug("Payment %s still %s at provider", payment.id, provider_status)
        return self._get_booking(booking_id), payment

    def _confirm_booking(self, booking_id: str, payment: Payment) -> Booking:
        actor = f"payment:{payment.provider_ref}"
        now = self._clock()
        transitioned = False

        def confirm(booking: Booking) -> bool:
            nonlocal transitioned
            transitioned = False
            changed = False
            if booking.payment_status in (PaymentState.PENDING, PaymentState.FAILED):
                booking.payment_status = PaymentState.PAID
                booking.payment_id = payment.id
                booking.updated_at = now
                changed = True
            if booking.status == BookingStatus.PENDING:
                self._lifecycle.apply(booking, LifecycleTrigger.PAYMENT_SUCCEEDED, actor, now)
                transitioned = True
                changed = True
            elif changed:
                logger.warning(
                    "Payment %s succeeded for %s booking %s", payment.id, booking.status.value, booking.id
                )
            return changed

        booking = save_with_retry(self._store, booking_id, confirm)
        if booking is None:
            raise NotFoundError("Booking not found")
        if transitioned:
            notify_safely(self._notifier, NotificationEvent.BOOKING_CONFIRMED, booking)
        return booking

    def _record_failure(self, booking_id: str, payment: Payment) -> tuple[Booking, Payment]:
        if payment.status == PaymentStatus.PENDING:
            payment.status = PaymentStatus.FAILED
            payment.updated_at = self._clock()
            try:
                self._store.payments.save(payment)
            except ConcurrentUpdateError:
                payment = self._store.payments.get(payment.id) or payment
            logger.info("Payment %s failed for booking %s", payment.id, booking_id)

        def mark_failed(booking: Booking) -> bool:
            if (
                booking.payment_status != PaymentState.PENDING
                or booking.payment_id != payment.id
                or payment.status != PaymentStatus.FAILED
            ):
                return False
            booking.payment_status = PaymentState.FAILED
            booking.updated_at = self._clock()
            return True

        booking = save_with_retry(self._store, booking_id, mark_failed)
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking, payment

    # ------------------------------------------------------------------ #
    # Refunds
    # ------------------------------------------------------------------ #

    def refund(
        self,
        payment_id: str,
        amount_cents: Optional[int],
        reason: str,
        actor: str,
    ) -> tuple[Payment, Booking, RefundRecord]:
        """
        Refund all or part of a succeeded payment.

        A full refund (cumulative refunds equal the amount) marks the payment
        refunded and cancels the booking; a partial refund only marks the
        booking partially refunded.

        Raises:
            NotFoundError: Unknown payment.
            RefundNotAllowedError: Payment not succeeded, or amount exceeds
                what is left to refund.
            PaymentProviderError: The provider refused or was unreachable.
        """
        payment = self._store.payments.get(payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")
        if payment.status != PaymentStatus.SUCCEEDED:
            raise RefundNotAllowedError("Cannot refund unsuccessful payment")
        amount = payment.refundable_cents if amount_cents is None else amount_cents
        if amount <= 0 or amount > payment.refundable_cents:
            raise RefundNotAllowedError(
                f"Refund amount must be between 1 and {payment.refundable_cents} cents"
            )

        partial = amount < payment.amount_cents
        receipt = self._provider.refund(
            payment.provider_ref, amount if partial else None, reason
        )
        now = self._clock()
        record = RefundRecord(
            id=receipt.id,
            amount_cents=receipt.amount_cents,
            reason=reason,
            refunded_at=now,
            refunded_by=actor,
        )
        payment = self._append_refund(payment_id, record, now)

        fully_refunded = payment.status == PaymentStatus.REFUNDED

        def apply_refund(booking: Booking) -> bool:
            if fully_refunded:
                booking.payment_status = PaymentState.REFUNDED
                if LifecycleTrigger.CANCEL in self._lifecycle.valid_triggers(booking.status):
                    self._lifecycle.cancel(
                        booking, f"Refunded: {reason}", actor, now, enforce_window=False
                    )
            else:
                booking.payment_status = PaymentState.PARTIALLY_REFUNDED
            booking.updated_at = now
            return True

        booking = save_with_retry(self._store, payment.booking_id, apply_refund)
        if booking is None:
            raise NotFoundError("Booking not found")
        logger.info(
            "Refund %s of %d cents on payment %s by %s (%s)",
            record.id, record.amount_cents, payment.id, actor,
            "full" if fully_refunded else "partial",
        )
        notify_safely(
            self._notifier, NotificationEvent.REFUND_ISSUED, booking, amount_cents=record.amount_cents
        )
        return payment, booking, record

    def _append_refund(self, payment_id: str, record: RefundRecord, now: datetime) -> Payment:
        for _ in range(3):
            payment = self._store.payments.get(payment_id)
            if payment is None:
                raise NotFoundError("Payment not found")
            if any(r.id == record.id for r in payment.refunds):
                return payment
            if record.amount_cents > payment.refundable_cents:
                raise RefundNotAllowedError("Refunds would exceed the original amount")
            payment.refunds.append(record)
            if payment.refunded_cents == payment.amount_cents:
                payment.status = PaymentStatus.REFUNDED
            payment.updated_at = now
            try:
                return self._store.payments.save(payment)
            except ConcurrentUpdateError:
                logger.debug("Retrying refund record on %s", payment_id)
        raise ConcurrentUpdateError(f"Payment {payment_id} kept changing; refund {record.id} not recorded")

    # ------------------------------------------------------------------ #
    # Lookups
    # ------------------------------------------------------------------ #

    def get_payment(self, payment_id: str) -> Payment:
        payment = self._store.payments.get(payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")
        return payment

    def list_payments(self, query: PaymentQuery) -> tuple[list[Payment], int]:
        return self._store.payments.find(query)

    def _get_booking(self, booking_id: str) -> Booking:
        booking = self._store.bookings.get(booking_id)
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    def _get_payment_by_ref(self, provider_ref: str) -> Payment:
        payment = self._store.payments.get_by_provider_ref(provider_ref)
        if payment is None:
            raise NotFoundError("Payment record not found")
        return payment
