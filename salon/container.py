"""
Wires configuration, storage, payment provider and services together.

Everything the HTTP layer and the CLI need is built here once; tests pass
their own store, provider, notifier and clock.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from salon.auth import TokenAuthenticator, parse_api_tokens
from salon.bookings.lifecycle import BookingLifecycle
from salon.bookings.reminders import ReminderService
from salon.bookings.service import BookingService
from salon.catalog import ServiceCatalog, default_services
from salon.config import AppConfig
from salon.notifications import LoggingNotifier, Notifier
from salon.payments.correlation import PaymentCorrelator
from salon.payments.provider import PaymentProvider, StripePaymentProvider
from salon.scheduling.availability import AvailabilityService
from salon.storage import Store, build_store
from salon.utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class Container:
    config: AppConfig
    store: Store
    catalog: ServiceCatalog
    lifecycle: BookingLifecycle
    availability: AvailabilityService
    bookings: BookingService
    payments: PaymentCorrelator
    reminders: ReminderService
    provider: PaymentProvider
    authenticator: TokenAuthenticator
    notifier: Notifier
    clock: Callable[[], datetime]


def build_container(
    config: AppConfig,
    store: Optional[Store] = None,
    provider: Optional[PaymentProvider] = None,
    notifier: Optional[Notifier] = None,
    clock: Callable[[], datetime] = utcnow,
    seed: bool = True,
) -> Container:
    """Build the service graph for ``config``."""
    business = config.business
    store = store or build_store(config.storage)
    if seed:
        added = store.seed_services(default_services())
        if added:
            logger.info("Seeded %d default services", added)

    provider = provider or StripePaymentProvider(
        config.payments.stripe_secret_key, config.payments.stripe_webhook_secret
    )
    notifier = notifier or LoggingNotifier()
    catalog = ServiceCatalog(store.services)
    lifecycle = BookingLifecycle(
        timezone=business.timezone,
        cancellation_window=timedelta(hours=business.cancellation_window_hours),
        clock=clock,
    )
    return Container(
        config=config,
        store=store,
        catalog=catalog,
        lifecycle=lifecycle,
        availability=AvailabilityService(catalog, store.bookings, business, clock),
        bookings=BookingService(store, catalog, lifecycle, business, notifier, clock),
        payments=PaymentCorrelator(store, provider, lifecycle, notifier, clock),
        reminders=ReminderService(
            store,
            lifecycle,
            notifier,
            business.timezone,
            lookahead=timedelta(hours=config.reminders.lookahead_hours),
            clock=clock,
        ),
        provider=provider,
        authenticator=TokenAuthenticator(parse_api_tokens(config.auth.api_tokens)),
        notifier=notifier,
        clock=clock,
    )
