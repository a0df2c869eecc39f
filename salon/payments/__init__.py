from salon.payments.correlation import PaymentCorrelator
from salon.payments.provider import (
    PaymentIntent,
    PaymentProvider,
    ProviderOutcome,
    RefundReceipt,
    StripePaymentProvider,
)

__all__ = [
    "PaymentCorrelator",
    "PaymentIntent",
    "PaymentProvider",
    "ProviderOutcome",
    "RefundReceipt",
    "StripePaymentProvider",
]
