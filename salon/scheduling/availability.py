"""
Open start times for a date: generated slots minus those blocked by
active bookings (with the configured buffer) and those already past.
"""

from datetime import date, datetime, timedelta
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from salon.catalog import ServiceCatalog
from salon.config import BusinessConfig
from salon.errors import InThePastError, NotFoundError
from salon.logging_context import get_request_logger
from salon.scheduling.conflicts import appointment_interval, booking_interval, is_available
from salon.scheduling.slots import BusinessHours, generate_slots
from salon.schemas.booking_schema import AvailabilityResponse
from salon.storage.base import BookingRepository
from salon.utils import format_hhmm, utcnow

logger = get_request_logger(__name__)


class AvailabilityService:
    def __init__(
        self,
        catalog: ServiceCatalog,
        bookings: BookingRepository,
        business: BusinessConfig,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._catalog = catalog
        self._bookings = bookings
        self._business = business
        self._hours = BusinessHours.from_config(business)
        self._buffer = timedelta(minutes=business.buffer_minutes)
        self._clock = clock

    def available_slots(self, day: date, service_id: Optional[str] = None) -> AvailabilityResponse:
        """
        Check which start times are still open on ``day``.

        Raises:
            InThePastError: If ``day`` is before today in the salon's timezone.
            NotFoundError: If ``service_id`` names no known service.
        """
        now = self._clock()
        today = now.astimezone(ZoneInfo(self._business.timezone)).date()
        if day < today:
            raise InThePastError("Cannot check availability for past dates")

        duration = self._business.default_duration_minutes
        if service_id:
            service = self._catalog.get(service_id)
            if service is None:
                raise NotFoundError(f"Service {service_id} not found")
            duration = service.duration_minutes

        response = AvailabilityResponse(
            date=day,
            service_id=service_id,
            business_hours=self._business.business_hours_label,
            business_days=self._business.business_days_label,
        )
        plan = generate_slots(day, self._hours, self._business.slot_step_minutes, duration)
        if plan.closed_reason:
            response.closed_reason = plan.closed_reason
            return response

        tz = self._business.timezone
        existing = [booking_interval(b, tz) for b in self._bookings.active_on(day)]
        open_slots = []
        for slot in plan.slots:
            candidate = appointment_interval(day, format_hhmm(slot), duration, tz)
            if candidate.start <= now:
                continue
            if is_available(candidate, existing, self._buffer):
                open_slots.append(format_hhmm(slot))

        response.available_slots = open_slots
        if not open_slots:
            response.closed_reason = "No open times remain on this date"
        logger.debug("Availability %s (%d min): %d open", day, duration, len(open_slots))
        return response
