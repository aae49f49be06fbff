from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.orm import Session

from medbook.auth.dependencies import get_current_user
from medbook.core.errors import BookingError, InvalidStateError, NotFoundError
from medbook.database import get_db
from medbook.models.appointment import Appointment
from medbook.models.user import User
from medbook.services.booking_engine import (
    AppointmentPatch,
    BookingEngine,
    normalize_notes,
    require_naive_timestamp,
)
from medbook.services.notifier import Notifier, deliver_all, get_notifier

router = APIRouter(tags=['appointments'])


class CreateAppointmentRequest(BaseModel):
    patient_id: int | None = None
    doctor_id: int
    schedule_id: int
    start_time: datetime
    end_time: datetime
    notes: str | None = None
    fee: Decimal | None = Field(default=None, ge=0)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return normalize_notes(value)

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_timestamps(cls, value: datetime) -> datetime:
        return require_naive_timestamp(value)

    @model_validator(mode='after')
    def validate_time_range(self) -> 'CreateAppointmentRequest':
        if self.end_time <= self.start_time:
            raise ValueError('End time must be after start time.')
        return self


class BookAppointmentRequest(BaseModel):
    patient_id: int
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return normalize_notes(value)


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int | None = None
    patient_name: str
    doctor_id: int
    doctor_name: str
    schedule_id: int
    start_time: datetime
    end_time: datetime
    status: str
    notes: str | None = None
    fee: Decimal | None = None

    @classmethod
    def from_appointment(cls, appointment: Appointment) -> 'AppointmentResponse':
        patient_user = appointment.patient.user if appointment.patient is not None else None
        return cls(
            id=appointment.id,
            patient_id=appointment.patient_id,
            patient_name=patient_user.full_name if patient_user is not None else '',
            doctor_id=appointment.doctor_id,
            doctor_name=appointment.doctor.display_name if appointment.doctor is not None else '',
            schedule_id=appointment.schedule_id,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            status=appointment.status.value,
            notes=appointment.notes,
            fee=appointment.fee,
        )


def to_http_exception(exc: BookingError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message)
    if isinstance(exc, InvalidStateError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message)
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.message)


def to_response_list(appointments: list[Appointment]) -> list[AppointmentResponse]:
    return [AppointmentResponse.from_appointment(appointment) for appointment in appointments]


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        result = BookingEngine(db).create(
            doctor_id=data.doctor_id,
            schedule_id=data.schedule_id,
            start_time=data.start_time,
            end_time=data.end_time,
            patient_id=data.patient_id,
            notes=data.notes,
            fee=data.fee,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return AppointmentResponse.from_appointment(result.appointment)


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(db: Session = Depends(get_db)):
    try:
        return to_response_list(BookingEngine(db).get_all())
    except BookingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/patient/{patient_id}', response_model=list[AppointmentResponse])
def list_patient_appointments(patient_id: int, db: Session = Depends(get_db)):
    try:
        return to_response_list(BookingEngine(db).get_by_patient(patient_id))
    except BookingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/doctor/{doctor_id}', response_model=list[AppointmentResponse])
def list_doctor_appointments(doctor_id: int, db: Session = Depends(get_db)):
    try:
        return to_response_list(BookingEngine(db).get_by_doctor(doctor_id))
    except BookingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/doctor/{doctor_id}/available', response_model=list[AppointmentResponse])
def list_available_slots(doctor_id: int, db: Session = Depends(get_db)):
    try:
        return to_response_list(BookingEngine(db).get_available_slots_by_doctor(doctor_id))
    except BookingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    try:
        appointment = BookingEngine(db).get_by_id(appointment_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    return AppointmentResponse.from_appointment(appointment)


@router.post('/{appointment_id}/book', response_model=AppointmentResponse)
def book_appointment(
    appointment_id: int,
    data: BookAppointmentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user),
):
    try:
        result = BookingEngine(db).book_appointment(appointment_id, data.patient_id, data.notes)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    background_tasks.add_task(deliver_all, notifier, result.notifications)
    return AppointmentResponse.from_appointment(result.appointment)


@router.patch('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    patch: AppointmentPatch,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user),
):
    try:
        result = BookingEngine(db).update(appointment_id, patch)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    background_tasks.add_task(deliver_all, notifier, result.notifications)
    return AppointmentResponse.from_appointment(result.appointment)


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    current_user: User = Depends(get_current_user),
):
    try:
        result = BookingEngine(db).cancel_appointment(appointment_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    background_tasks.add_task(deliver_all, notifier, result.notifications)
    return AppointmentResponse.from_appointment(result.appointment)


@router.delete('/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        BookingEngine(db).delete(appointment_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
