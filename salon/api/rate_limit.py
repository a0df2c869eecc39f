"""
Per-client request throttling.

Every request counts against a general per-IP limit; payment intent
creation also counts against a stricter one. Counters live in the ``limits``
storage named by ``RATE_LIMIT_STORAGE_URI``: ``memory://`` for a single
worker, ``redis://`` or ``mongodb://`` when several workers share them.
"""

import math
import time
from typing import Callable

from fastapi import Depends, Request
from limits import RateLimitItem, RateLimitItemPerMinute
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

from salon.config import RateLimitConfig
from salon.errors import RateLimitedError
from salon.logging_context import get_request_logger

logger = get_request_logger(__name__)

GENERAL_SCOPE = "api"
PAYMENT_SCOPE = "payment"

# Provider callbacks and health checks are not client traffic.
EXEMPT_PATHS = frozenset({"/health", "/api/payments/webhook"})

MESSAGES = {
    GENERAL_SCOPE: "Too many requests from this IP, please try again later.",
    PAYMENT_SCOPE: "Too many payment attempts, please try again later.",
}


class RequestThrottle:
    """Fixed-window counters keyed by scope and client address."""

    def __init__(self, config: RateLimitConfig) -> None:
        self.enabled = config.enabled
        self._trust_forwarded_for = config.trust_forwarded_for
        self._limiter = FixedWindowRateLimiter(storage_from_string(config.storage_uri))
        self._items: dict[str, RateLimitItem] = {
            GENERAL_SCOPE: RateLimitItemPerMinute(config.requests_per_window, config.window_minutes),
            PAYMENT_SCOPE: RateLimitItemPerMinute(
                config.payment_attempts_per_window, config.window_minutes
            ),
        }

    def client_key(self, request: Request) -> str:
        if self._trust_forwarded_for:
            forwarded = request.headers.get("X-Forwarded-For")
            if forwarded:
                return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def check(self, scope: str, client: str) -> None:
        """
        Count one request from ``client`` against ``scope``.

        Raises:
            RateLimitedError: The client used up the window; carries the
                seconds until it resets.
        """
        if not self.enabled:
            return
        item = self._items[scope]
        if self._limiter.hit(item, scope, client):
            return
        reset_at = self._limiter.get_window_stats(item, scope, client).reset_time
        retry_after = max(1, math.ceil(reset_at - time.time()))
        logger.warning("Rate limit %s hit by %s, retry in %ds", scope, client, retry_after)
        raise RateLimitedError(MESSAGES[scope], retry_after=retry_after)

    def exempt(self, path: str) -> bool:
        return path in EXEMPT_PATHS


def get_throttle(request: Request) -> RequestThrottle:
    return request.app.state.throttle


def throttle(scope: str) -> Callable[..., None]:
    """Dependency that counts the request against ``scope`` before the endpoint runs."""

    def dependency(
        request: Request, limiter: RequestThrottle = Depends(get_throttle)
    ) -> None:
        limiter.check(scope, limiter.client_key(request))

    dependency.__name__ = f"throttle_{scope}"
    return dependency
