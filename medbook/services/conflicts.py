from datetime import datetime

from sqlalchemy.orm import Session

from medbook.models.appointment import Appointment


def overlaps(
    candidate_start: datetime,
    candidate_end: datetime,
    existing_start: datetime,
    existing_end: datetime,
) -> bool:
    """Half-open interval test; an interval ending when another begins does not overlap it."""
    return candidate_start < existing_end and existing_start < candidate_end


def find_conflicting_appointment(
    db: Session,
    doctor_id: int,
    start_time: datetime,
    end_time: datetime,
    exclude_appointment_id: int | None = None,
) -> Appointment | None:
    """Return the earliest appointment of ``doctor_id`` that overlaps [start_time, end_time).

    The range predicate is served by the (doctor_id, start_time, end_time)
    index, so only candidate rows are read instead of the doctor's whole
    calendar.
    """
    query = db.query(Appointment).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.start_time < end_time,
        Appointment.end_time > start_time,
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)

    return query.order_by(Appointment.start_time.asc()).first()


def within_schedule_window(schedule_slot, start_time: datetime, end_time: datetime) -> bool:
    if start_time.date() != schedule_slot.work_date or end_time.date() != schedule_slot.work_date:
        return False
    return schedule_slot.start_time <= start_time.time() and end_time.time() <= schedule_slot.end_time
