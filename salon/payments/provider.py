"""
Payment provider capability.

The booking engine only needs three things from a processor: create an
intent, find out how it ended, and refund it. ``StripePaymentProvider``
implements them with the Stripe SDK; any Stripe failure is raised as a
retryable ``PaymentProviderError`` so callers never act on a guess.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import stripe

from salon.errors import PaymentProviderError, ValidationFailedError
from salon.logging_context import get_request_logger

logger = get_request_logger(__name__)

STRIPE_REFUND_REASONS = frozenset({"duplicate", "fraudulent", "requested_by_customer"})


@dataclass(frozen=True)
class PaymentIntent:
    """Opaque client-side payment handle."""

    id: str
    client_secret: Optional[str]
    status: str


@dataclass(frozen=True)
class ProviderOutcome:
    intent_ref: str
    status: str
    charge_id: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RefundReceipt:
    id: str
    amount_cents: int
    status: str


class PaymentProvider(Protocol):
    def create_intent(
        self, amount_cents: int, currency: str, metadata: dict[str, str], receipt_email: str
    ) -> PaymentIntent: ...

    def confirm(self, intent_ref: str) -> ProviderOutcome: ...

    def refund(
        self, intent_ref: str, amount_cents: Optional[int] = None, reason: str = ""
    ) -> RefundReceipt: ...

    def parse_event(self, payload: bytes, signature: str) -> Any: ...


def field_of(obj: Any, name: str) -> Any:
    """Read a key from a Stripe object or plain dict, None when absent."""
    try:
        return obj[name]
    except (KeyError, TypeError, AttributeError):
        return None


class StripePaymentProvider:
    """Stripe PaymentIntents and Refunds behind the ``PaymentProvider`` contract."""

    def __init__(self, secret_key: str, webhook_secret: str = "") -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret

    def _require_key(self) -> str:
        if not self._secret_key:
            raise PaymentProviderError("Payment provider is not configured")
        return self._secret_key

    def create_intent(
        self, amount_cents: int, currency: str, metadata: dict[str, str], receipt_email: str
    ) -> PaymentIntent:
        api_key = self._require_key()
        try:
            intent = stripe.PaymentIntent.create(
                api_key=api_key,
                amount=amount_cents,
                currency=currency.lower(),
                metadata=metadata,
                receipt_email=receipt_email,
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as exc:
            logger.error("Stripe create_intent failed: %s", exc)
            raise PaymentProviderError("Failed to create payment intent") from exc
        logger.info("Created payment intent %s for %d %s", intent.id, amount_cents, currency)
        return PaymentIntent(id=intent.id, client_secret=intent.client_secret, status=intent.status)

    def confirm(self, intent_ref: str) -> ProviderOutcome:
        api_key = self._require_key()
        try:
            intent = stripe.PaymentIntent.retrieve(intent_ref, api_key=api_key)
        except stripe.StripeError as exc:
            logger.error("Stripe retrieve %s failed: %s", intent_ref, exc)
            raise PaymentProviderError("Failed to confirm payment") from exc
        metadata = field_of(intent, "metadata") or {}
        return ProviderOutcome(
            intent_ref=intent.id,
            status=intent.status,
            charge_id=field_of(intent, "latest_charge"),
            metadata={k: str(v) for k, v in dict(metadata).items()},
        )

    def refund(
        self, intent_ref: str, amount_cents: Optional[int] = None, reason: str = ""
    ) -> RefundReceipt:
        api_key = self._require_key()
        params: dict[str, Any] = {
            "payment_intent": intent_ref,
            "reason": reason if reason in STRIPE_REFUND_REASONS else "requested_by_customer",
            "metadata": {"note": reason[:500]} if reason else {},
        }
        if amount_cents is not None:
            params["amount"] = amount_cents
        try:
            refund = stripe.Refund.create(api_key=api_key, **params)
        except stripe.StripeError as exc:
            logger.error("Stripe refund for %s failed: %s", intent_ref, exc)
            raise PaymentProviderError("Failed to process refund") from exc
        return RefundReceipt(id=refund.id, amount_cents=refund.amount, status=refund.status)

    def parse_event(self, payload: bytes, signature: str) -> Any:
        """Verify a webhook signature and return the event."""
        if not self._webhook_secret:
            raise PaymentProviderError("Webhook secret is not configured")
        try:
            return stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except ValueError as exc:
            raise ValidationFailedError("Invalid webhook payload") from exc
        except stripe.SignatureVerificationError as exc:
            logger.warning("Rejected webhook with bad signature")
            raise ValidationFailedError("Invalid webhook signature", code="invalid_signature") from exc
