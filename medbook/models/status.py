"""Lifecycle labels shared by schedule slots and appointments."""

from enum import Enum


class SlotStatus(str, Enum):
    AVAILABLE = "Available"
    BOOKED = "Booked"


class AppointmentStatus(str, Enum):
    AVAILABLE = "Available"
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


def enum_values(enum_class) -> list[str]:
    return [member.value for member in enum_class]
