"""Keyed lookups for the records the booking engine reads.

``Directory`` resolves patients, doctors and schedule slots. ``AppointmentStore``
reads and writes appointments inside the caller's session; it never commits.
A miss is always ``None`` so callers decide which error to raise.
"""

from sqlalchemy.orm import Session

from medbook.models.appointment import Appointment
from medbook.models.doctor import Doctor
from medbook.models.patient import Patient
from medbook.models.schedule import ScheduleSlot
from medbook.models.status import AppointmentStatus
from medbook.models.user import User  # noqa: F401  registers the users mapper


class Directory:
    def __init__(self, db: Session):
        self.db = db

    def find_patient(self, patient_id: int) -> Patient | None:
        return self.db.get(Patient, patient_id)

    def find_doctor(self, doctor_id: int, lock: bool = False) -> Doctor | None:
        if not lock:
            return self.db.get(Doctor, doctor_id)
        # Row lock on the doctor serializes conflict checks for that doctor's calendar.
        return (
            self.db.query(Doctor)
            .filter(Doctor.id == doctor_id)
            .with_for_update(of=Doctor)
            .populate_existing()
            .first()
        )

    def find_schedule_slot(self, schedule_id: int, lock: bool = False) -> ScheduleSlot | None:
        if not lock:
            return self.db.get(ScheduleSlot, schedule_id)
        return (
            self.db.query(ScheduleSlot)
            .filter(ScheduleSlot.id == schedule_id)
            .with_for_update()
            .populate_existing()
            .first()
        )


class AppointmentStore:
    def __init__(self, db: Session):
        self.db = db

    def add(self, appointment: Appointment) -> Appointment:
        self.db.add(appointment)
        self.db.flush()
        return appointment

    def get(self, appointment_id: int, lock: bool = False) -> Appointment | None:
        if not lock:
            return self.db.get(Appointment, appointment_id)
        return (
            self.db.query(Appointment)
            .filter(Appointment.id == appointment_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def exists(self, appointment_id: int) -> bool:
        return self.db.query(Appointment.id).filter(Appointment.id == appointment_id).first() is not None

    def delete(self, appointment_id: int) -> None:
        self.db.query(Appointment).filter(Appointment.id == appointment_id).delete(synchronize_session='fetch')

    def list_all(self) -> list[Appointment]:
        return self.db.query(Appointment).order_by(Appointment.start_time.asc(), Appointment.id.asc()).all()

    def list_by_doctor(self, doctor_id: int) -> list[Appointment]:
        return (
            self.db.query(Appointment)
            .filter(Appointment.doctor_id == doctor_id)
            .order_by(Appointment.start_time.asc())
            .all()
        )

    def list_by_patient(self, patient_id: int) -> list[Appointment]:
        return (
            self.db.query(Appointment)
            .filter(Appointment.patient_id == patient_id)
            .order_by(Appointment.start_time.asc())
            .all()
        )

    def list_open_by_doctor(self, doctor_id: int) -> list[Appointment]:
        return (
            self.db.query(Appointment)
            .filter(
                Appointment.doctor_id == doctor_id,
                Appointment.status == AppointmentStatus.AVAILABLE,
            )
            .order_by(Appointment.start_time.asc())
            .all()
        )
