"""
Error taxonomy shared by the booking engine and the HTTP layer.

Every error carries a stable ``code`` and the HTTP status it maps to, so
routes raise domain errors and a single exception handler renders them.
"""

from typing import Optional


class SalonError(Exception):
    """Base class for all expected, reportable failures."""

    code = "error"
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"success": False, "code": self.code, "message": self.message}


# --- Validation ---

class ValidationFailedError(SalonError):
    """Malformed or missing input. No state was changed."""

    code = "validation_failed"
    status_code = 400


class InvalidIntervalError(ValidationFailedError, ValueError):
    """An appointment interval with zero or negative length."""


# --- Not found ---

class NotFoundError(SalonError):
    code = "not_found"
    status_code = 404


# --- Authorization ---

class NotAuthenticatedError(SalonError):
    code = "not_authenticated"
    status_code = 401


class NotAuthorizedError(SalonError):
    code = "not_authorized"
    status_code = 403


# --- Policy ---

class PolicyError(SalonError):
    """A business rule rejected the request. No state was changed."""

    code = "policy_violation"
    status_code = 400


class OutsideBusinessHoursError(PolicyError):
    code = "outside_business_hours"


class InThePastError(PolicyError):
    code = "in_the_past"


class SlotConflictError(PolicyError):
    code = "slot_conflict"
    status_code = 409


class CancellationWindowError(PolicyError):
    code = "outside_cancellation_window"


class InvalidTransitionError(PolicyError):
    """Raised when a status change is not valid from the current status."""

    code = "invalid_transition"


class InactiveServiceError(PolicyError):
    code = "inactive_service"


class AlreadyPaidError(PolicyError):
    code = "already_paid"


class AmountMismatchError(PolicyError):
    code = "amount_mismatch"


class RefundNotAllowedError(PolicyError):
    code = "refund_not_allowed"


class ReviewNotAllowedError(PolicyError):
    code = "review_not_allowed"


# --- External dependencies ---

class ExternalDependencyError(SalonError):
    """A collaborator failed. Safe to retry; nothing was partially applied."""

    code = "dependency_failure"
    status_code = 503
    retryable = True


class PaymentProviderError(ExternalDependencyError):
    code = "payment_provider_error"
    status_code = 502


class StorageUnavailableError(ExternalDependencyError):
    code = "storage_unavailable"
    status_code = 503


class ConcurrentUpdateError(ExternalDependencyError):
    """The record changed between read and write."""

    code = "concurrent_update"
    status_code = 409


# --- Throttling ---

class RateLimitedError(SalonError):
    """The caller exceeded a request limit. Nothing was processed."""

    code = "rate_limited"
    status_code = 429

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = retry_after
