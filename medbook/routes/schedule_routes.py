from datetime import date, time

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medbook.auth.dependencies import get_current_user
from medbook.core.errors import DATABASE_UNAVAILABLE
from medbook.database import get_db
from medbook.models.schedule import ScheduleSlot
from medbook.models.status import SlotStatus
from medbook.models.user import User
from medbook.services.directory import Directory

router = APIRouter(tags=['schedules'])


class CreateScheduleSlotRequest(BaseModel):
    doctor_id: int
    work_date: date
    start_time: time
    end_time: time

    @model_validator(mode='after')
    def validate_time_range(self) -> 'CreateScheduleSlotRequest':
        if self.end_time <= self.start_time:
            raise ValueError('End time must be after start time.')
        return self


class ScheduleSlotResponse(BaseModel):
    id: int
    doctor_id: int
    work_date: date
    start_time: time
    end_time: time
    status: SlotStatus

    class Config:
        from_attributes = True


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE,
    )


@router.post('', response_model=ScheduleSlotResponse, status_code=status.HTTP_201_CREATED)
def create_schedule_slot(
    data: CreateScheduleSlotRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        doctor = Directory(db).find_doctor(data.doctor_id, lock=True)
        if doctor is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f'Doctor not found with id: {data.doctor_id}',
            )

        overlapping_slot = db.query(ScheduleSlot).filter(
            ScheduleSlot.doctor_id == doctor.id,
            ScheduleSlot.work_date == data.work_date,
            ScheduleSlot.start_time < data.end_time,
            ScheduleSlot.end_time > data.start_time,
        ).first()
        if overlapping_slot:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='This schedule overlaps an existing schedule for the doctor.',
            )

        schedule_slot = ScheduleSlot(
            doctor_id=doctor.id,
            work_date=data.work_date,
            start_time=data.start_time,
            end_time=data.end_time,
            status=SlotStatus.AVAILABLE,
        )
        db.add(schedule_slot)
        db.commit()
        db.refresh(schedule_slot)

        return schedule_slot
    except HTTPException:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/doctor/{doctor_id}', response_model=list[ScheduleSlotResponse])
def list_doctor_schedule_slots(doctor_id: int, db: Session = Depends(get_db)):
    try:
        return db.query(ScheduleSlot).filter(
            ScheduleSlot.doctor_id == doctor_id,
        ).order_by(ScheduleSlot.work_date.asc(), ScheduleSlot.start_time.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
