"""Appointment model definitions."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from medbook.database import Base
from medbook.models.status import AppointmentStatus, enum_values


class Appointment(Base):
    """An open or claimed reservation of a doctor's time.

    A row without a patient is an open appointment offered for booking.
    ``version`` is bumped on every UPDATE so concurrent writers to the same
    row are detected at flush time.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_appointments_time_order"),
        CheckConstraint("fee IS NULL OR fee >= 0", name="ck_appointments_fee_non_negative"),
        Index("idx_appointments_doctor_time_range", "doctor_id", "start_time", "end_time"),
    )

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    schedule_id = Column(Integer, ForeignKey("schedule_slots.id"), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(
        Enum(AppointmentStatus, name="appointment_status", native_enum=False, values_callable=enum_values, length=20),
        nullable=False,
    )
    notes = Column(String(500))
    fee = Column(Numeric(10, 2))
    version = Column(Integer, nullable=False)

    patient = relationship("Patient")
    doctor = relationship("Doctor")
    schedule = relationship("ScheduleSlot")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Appointment {self.id} doctor={self.doctor_id} {self.start_time}-{self.end_time} {self.status}>"
