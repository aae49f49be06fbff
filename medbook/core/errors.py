"""Rejections raised by the booking engine.

Every failure is specific to one operation and carries a message that can be
shown to the caller as-is. None of them is retried by the engine.
"""

SCHEDULE_UNAVAILABLE = 'Schedule is not available.'
SCHEDULE_DOCTOR_MISMATCH = 'Schedule does not belong to the requested doctor.'
OUTSIDE_WORKING_HOURS = 'Start and end time must fall within the schedule working hours.'
TIME_SLOT_CONFLICT = 'Time slot overlaps an existing appointment.'
ALREADY_BOOKED = 'This time slot has already been booked.'
INVALID_TIME_RANGE = 'End time must be after start time.'
CONCURRENT_MODIFICATION = 'Appointment was modified concurrently. Reload and try again.'
OPEN_APPOINTMENT_HAS_PATIENT = 'An Available appointment cannot have a patient attached.'
CLAIMED_APPOINTMENT_WITHOUT_PATIENT = 'Only an appointment with a patient attached can be Scheduled or Completed.'
DATABASE_UNAVAILABLE = 'Database unavailable. Verify DATABASE_URL and database credentials.'


class BookingError(Exception):
    """Base class for rejected booking operations."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(BookingError):
    def __init__(self, entity_kind: str, entity_id: int):
        super().__init__(f'{entity_kind.capitalize()} not found with id: {entity_id}')
        self.entity_kind = entity_kind
        self.entity_id = entity_id


class InvalidStateError(BookingError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class PersistenceError(BookingError):
    """The store failed; the operation was rolled back in full."""
