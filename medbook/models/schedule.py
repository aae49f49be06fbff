"""Schedule slot model definitions."""

from sqlalchemy import CheckConstraint, Column, Date, Enum, ForeignKey, Integer, Time
from sqlalchemy.orm import relationship

from medbook.database import Base
from medbook.models.status import SlotStatus, enum_values


class ScheduleSlot(Base):
    """A window of one calendar day during which a doctor takes appointments."""
    __tablename__ = "schedule_slots"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_schedule_slots_time_order"),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    work_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(
        Enum(SlotStatus, name="slot_status", native_enum=False, values_callable=enum_values, length=20),
        nullable=False,
        default=SlotStatus.AVAILABLE,
    )

    doctor = relationship("Doctor")
