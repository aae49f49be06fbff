"""
Appointment booking engine.

Every mutating operation runs as one transaction on the session it was given:
lookups, validation and writes either all commit or all roll back. Creating an
appointment locks the doctor row first, so two requests for the same doctor
run their conflict checks one after the other. Rows being changed are locked
too, and the ``version`` column rejects any write based on a stale read.

Operations return a ``BookingResult``. Its notifications are meant to be sent
by the caller after the commit, with ``deliver_all``.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from medbook.core import config
from medbook.core.errors import (
    ALREADY_BOOKED,
    CLAIMED_APPOINTMENT_WITHOUT_PATIENT,
    CONCURRENT_MODIFICATION,
    DATABASE_UNAVAILABLE,
    INVALID_TIME_RANGE,
    OPEN_APPOINTMENT_HAS_PATIENT,
    OUTSIDE_WORKING_HOURS,
    SCHEDULE_DOCTOR_MISMATCH,
    SCHEDULE_UNAVAILABLE,
    TIME_SLOT_CONFLICT,
    BookingError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
)
from medbook.models.appointment import Appointment
from medbook.models.patient import Patient
from medbook.models.status import AppointmentStatus, SlotStatus
from medbook.services.conflicts import find_conflicting_appointment, within_schedule_window
from medbook.services.directory import AppointmentStore, Directory
from medbook.services.notifier import Notification

logger = logging.getLogger(__name__)

_REQUIRED_PATCH_FIELDS = ('start_time', 'end_time', 'status')
_CLAIMED_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.COMPLETED)


def normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


def require_naive_timestamp(value: datetime | None) -> datetime | None:
    # Appointment times are stored as clinic wall-clock time without an offset.
    if value is not None and value.tzinfo is not None:
        raise ValueError('Timestamps must be local clinic time without a timezone offset.')
    return value


class AppointmentPatch(BaseModel):
    """Partial update of an appointment.

    Only fields the caller actually passed are applied. ``notes`` and ``fee``
    may be passed as ``None`` to clear them; the time range and status may not.
    """

    start_time: datetime | None = None
    end_time: datetime | None = None
    status: AppointmentStatus | None = None
    notes: str | None = None
    fee: Decimal | None = Field(default=None, ge=0)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return normalize_notes(value)

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_timestamps(cls, value: datetime | None) -> datetime | None:
        return require_naive_timestamp(value)

    @model_validator(mode='after')
    def reject_null_required_fields(self) -> 'AppointmentPatch':
        for name in _REQUIRED_PATCH_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f'{name} cannot be cleared.')
        return self

    def changes(self) -> dict:
        return {name: getattr(self, name) for name in self.model_fields_set}


@dataclass
class BookingResult:
    appointment: Appointment
    notifications: list[Notification] = field(default_factory=list)


class BookingEngine:
    def __init__(self, db: Session):
        self.db = db
        self.directory = Directory(db)
        self.appointments = AppointmentStore(db)

    @contextmanager
    def _transaction(self, operation: str):
        try:
            yield
            self.db.commit()
        except BookingError as exc:
            self.db.rollback()
            logger.info('Rejected %s: %s', operation, exc.message)
            raise
        except StaleDataError as exc:
            self.db.rollback()
            logger.warning('Concurrent modification during %s', operation)
            raise InvalidStateError(CONCURRENT_MODIFICATION) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Database failure during %s', operation)
            raise PersistenceError(DATABASE_UNAVAILABLE) from exc

    def _require_appointment(self, appointment_id: int, lock: bool = False) -> Appointment:
        appointment = self.appointments.get(appointment_id, lock=lock)
        if appointment is None:
            raise NotFoundError('appointment', appointment_id)
        return appointment

    def _require_patient(self, patient_id: int) -> Patient:
        patient = self.directory.find_patient(patient_id)
        if patient is None:
            raise NotFoundError('patient', patient_id)
        return patient

    def _notify_patient(self, appointment: Appointment, subject: str, body: str) -> list[Notification]:
        patient = appointment.patient
        recipient = patient.contact_email if patient is not None else None
        if not recipient:
            logger.info('Skipping "%s" notification for appointment %s: no patient contact', subject, appointment.id)
            return []

        when = f'{appointment.start_time:%Y-%m-%d %H:%M} - {appointment.end_time:%H:%M}'
        return [
            Notification(
                recipient=recipient,
                subject=subject,
                body=f'{body} ({when}).',
                appointment_id=appointment.id,
            )
        ]

    def create(
        self,
        doctor_id: int,
        schedule_id: int,
        start_time: datetime,
        end_time: datetime,
        patient_id: int | None = None,
        notes: str | None = None,
        fee: Decimal | None = None,
    ) -> BookingResult:
        with self._transaction('create'):
            if patient_id is not None:
                self._require_patient(patient_id)

            doctor = self.directory.find_doctor(doctor_id, lock=True)
            if doctor is None:
                raise NotFoundError('doctor', doctor_id)

            schedule_slot = self.directory.find_schedule_slot(schedule_id)
            if schedule_slot is None:
                raise NotFoundError('schedule', schedule_id)

            if schedule_slot.doctor_id != doctor.id:
                raise InvalidStateError(SCHEDULE_DOCTOR_MISMATCH)

            if schedule_slot.status != SlotStatus.AVAILABLE:
                raise InvalidStateError(SCHEDULE_UNAVAILABLE)

            if not start_time < end_time:
                raise InvalidStateError(INVALID_TIME_RANGE)

            if not within_schedule_window(schedule_slot, start_time, end_time):
                raise InvalidStateError(OUTSIDE_WORKING_HOURS)

            conflict = find_conflicting_appointment(self.db, doctor.id, start_time, end_time)
            if conflict is not None:
                raise InvalidStateError(TIME_SLOT_CONFLICT)

            appointment = self.appointments.add(
                Appointment(
                    patient_id=patient_id,
                    doctor_id=doctor.id,
                    schedule_id=schedule_slot.id,
                    start_time=start_time,
                    end_time=end_time,
                    status=AppointmentStatus.SCHEDULED if patient_id is not None else AppointmentStatus.AVAILABLE,
                    notes=notes,
                    fee=fee,
                )
            )

        logger.info('Created appointment %s for doctor %s (%s)', appointment.id, doctor_id, appointment.status.value)
        return BookingResult(appointment)

    def book_appointment(self, appointment_id: int, patient_id: int, notes: str | None = None) -> BookingResult:
        with self._transaction('book'):
            appointment = self._require_appointment(appointment_id, lock=True)
            if appointment.patient_id is not None:
                raise InvalidStateError(ALREADY_BOOKED)

            patient = self._require_patient(patient_id)

            appointment.patient = patient
            appointment.status = AppointmentStatus.SCHEDULED
            appointment.notes = notes
            self.db.flush()

            notifications = self._notify_patient(
                appointment, 'Appointment Booked', 'Your appointment has been booked'
            )

        logger.info('Booked appointment %s for patient %s', appointment_id, patient_id)
        return BookingResult(appointment, notifications)

    def update(self, appointment_id: int, patch: AppointmentPatch) -> BookingResult:
        # Overlap and working-hours checks are not re-run here; see DESIGN.md.
        changes = patch.changes()

        with self._transaction('update'):
            appointment = self._require_appointment(appointment_id, lock=True)

            start_time = changes.get('start_time', appointment.start_time)
            end_time = changes.get('end_time', appointment.end_time)
            if not start_time < end_time:
                raise InvalidStateError(INVALID_TIME_RANGE)

            new_status = changes.get('status', appointment.status)
            if new_status == AppointmentStatus.AVAILABLE and appointment.patient_id is not None:
                raise InvalidStateError(OPEN_APPOINTMENT_HAS_PATIENT)
            if new_status in _CLAIMED_STATUSES and appointment.patient_id is None:
                raise InvalidStateError(CLAIMED_APPOINTMENT_WITHOUT_PATIENT)

            for name, value in changes.items():
                setattr(appointment, name, value)
            self.db.flush()

            notifications = self._notify_patient(
                appointment, 'Appointment Updated', 'Your appointment has been updated'
            )

        logger.info('Updated appointment %s fields=%s', appointment_id, sorted(changes))
        return BookingResult(appointment, notifications)

    def cancel_appointment(self, appointment_id: int) -> BookingResult:
        with self._transaction('cancel'):
            appointment = self._require_appointment(appointment_id, lock=True)
            appointment.status = AppointmentStatus.CANCELLED

            schedule_slot = self.directory.find_schedule_slot(appointment.schedule_id, lock=True)
            if schedule_slot is None:
                raise NotFoundError('schedule', appointment.schedule_id)
            schedule_slot.status = SlotStatus.AVAILABLE
            self.db.flush()

            notifications = self._notify_patient(
                appointment, 'Appointment Cancelled', 'Your appointment has been cancelled'
            )

        logger.info('Cancelled appointment %s; released schedule %s', appointment_id, schedule_slot.id)
        return BookingResult(appointment, notifications)

    def delete(self, appointment_id: int) -> None:
        with self._transaction('delete'):
            if not self.appointments.exists(appointment_id):
                raise NotFoundError('appointment', appointment_id)
            self.appointments.delete(appointment_id)

        logger.info('Deleted appointment %s', appointment_id)

    @contextmanager
    def _reading(self, operation: str):
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Database failure during %s', operation)
            raise PersistenceError(DATABASE_UNAVAILABLE) from exc

    def get_all(self) -> list[Appointment]:
        with self._reading('get_all'):
            return self.appointments.list_all()

    def get_by_id(self, appointment_id: int) -> Appointment:
        with self._reading('get_by_id'):
            return self._require_appointment(appointment_id)

    def get_by_patient(self, patient_id: int) -> list[Appointment]:
        with self._reading('get_by_patient'):
            return self.appointments.list_by_patient(patient_id)

    def get_by_doctor(self, doctor_id: int) -> list[Appointment]:
        with self._reading('get_by_doctor'):
            return self.appointments.list_by_doctor(doctor_id)

    def get_available_slots_by_doctor(self, doctor_id: int) -> list[Appointment]:
        with self._reading('get_available_slots_by_doctor'):
            return self.appointments.list_open_by_doctor(doctor_id)
