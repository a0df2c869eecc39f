from salon.scheduling.conflicts import Interval, appointment_interval, find_conflict, is_available
from salon.scheduling.slots import BusinessHours, SlotPlan, generate_slots

__all__ = [
    "Interval",
    "appointment_interval",
    "find_conflict",
    "is_available",
    "BusinessHours",
    "SlotPlan",
    "generate_slots",
]
