from salon.bookings.lifecycle import BookingLifecycle, LifecycleTrigger
from salon.bookings.reminders import ReminderService
from salon.bookings.service import BookingService

__all__ = ["BookingLifecycle", "LifecycleTrigger", "BookingService", "ReminderService"]
