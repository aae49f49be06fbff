from datetime import datetime
from decimal import Decimal

import pytest
from fastapi import BackgroundTasks, HTTPException
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from medbook.core.errors import DATABASE_UNAVAILABLE, PersistenceError
from medbook.routes.appointment_routes import (
    AppointmentResponse,
    BookAppointmentRequest,
    CreateAppointmentRequest,
    book_appointment,
    cancel_appointment,
    create_appointment,
    delete_appointment,
    get_appointment,
    list_appointments,
    list_available_slots,
    list_doctor_appointments,
    list_patient_appointments,
    to_http_exception,
    update_appointment,
)
from medbook.services.booking_engine import AppointmentPatch
from medbook.services.directory import AppointmentStore
from medbook.services.notifier import deliver_all


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 12, 25, hour, minute)


def create_request(clinic, start: datetime, end: datetime, **kwargs) -> CreateAppointmentRequest:
    return CreateAppointmentRequest(
        doctor_id=clinic.doctor_id,
        schedule_id=clinic.schedule_id,
        start_time=start,
        end_time=end,
        **kwargs,
    )


def run_background(background_tasks: BackgroundTasks) -> None:
    for task in background_tasks.tasks:
        task.func(*task.args, **task.kwargs)


def test_create_appointment_request_normalizes_notes() -> None:
    request = CreateAppointmentRequest(
        doctor_id=1,
        schedule_id=1,
        start_time=at(9),
        end_time=at(10),
        notes='   ',
    )

    assert request.notes is None
    assert request.patient_id is None


@pytest.mark.parametrize(
    'overrides',
    [
        {'end_time': at(9)},
        {'end_time': at(8)},
        {'fee': Decimal('-5.00')},
        {'notes': 'x' * 501},
    ],
)
def test_create_appointment_request_rejects_invalid_input(overrides: dict) -> None:
    payload = {'doctor_id': 1, 'schedule_id': 1, 'start_time': at(9), 'end_time': at(10)}
    payload.update(overrides)

    with pytest.raises(ValidationError):
        CreateAppointmentRequest(**payload)


def test_create_appointment_returns_display_names(db, clinic) -> None:
    response = create_appointment(
        data=create_request(clinic, at(9), at(10), patient_id=clinic.patient_id, fee=Decimal('100.00')),
        db=db,
        current_user=None,
    )

    assert response.patient_name == 'Jane Smith'
    assert response.doctor_name == 'Dr. John Doe'
    assert response.status == 'Scheduled'
    assert response.schedule_id == clinic.schedule_id
    assert response.fee == Decimal('100.00')


def test_open_appointment_response_has_empty_patient_name(db, clinic) -> None:
    response = create_appointment(data=create_request(clinic, at(9), at(10)), db=db, current_user=None)

    assert response.patient_id is None
    assert response.patient_name == ''
    assert response.status == 'Available'


def test_create_appointment_maps_conflict_to_409(db, clinic) -> None:
    create_appointment(data=create_request(clinic, at(9), at(10)), db=db, current_user=None)

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(data=create_request(clinic, at(9, 15), at(9, 45)), db=db, current_user=None)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Time slot overlaps an existing appointment.'


def test_create_appointment_maps_outside_hours_to_409(db, clinic) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_appointment(data=create_request(clinic, at(7), at(8)), db=db, current_user=None)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Start and end time must fall within the schedule working hours.'


def test_create_appointment_maps_missing_doctor_to_404(db, clinic) -> None:
    data = CreateAppointmentRequest(doctor_id=999, schedule_id=clinic.schedule_id, start_time=at(9), end_time=at(10))

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(data=data, db=db, current_user=None)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Doctor not found with id: 999'


def test_book_appointment_queues_notification_after_commit(db, clinic, notifier) -> None:
    created = create_appointment(data=create_request(clinic, at(9), at(10)), db=db, current_user=None)
    background_tasks = BackgroundTasks()

    response = book_appointment(
        appointment_id=created.id,
        data=BookAppointmentRequest(patient_id=clinic.patient_id, notes=' first visit '),
        background_tasks=background_tasks,
        db=db,
        notifier=notifier,
        current_user=None,
    )

    assert response.status == 'Scheduled'
    assert response.notes == 'first visit'
    assert len(background_tasks.tasks) == 1
    assert background_tasks.tasks[0].func is deliver_all
    assert notifier.sent == []

    run_background(background_tasks)

    assert [(recipient, subject) for recipient, subject, _ in notifier.sent] == [
        ('patient@test.com', 'Appointment Booked')
    ]


def test_book_appointment_survives_notifier_failure(db, clinic, failing_notifier) -> None:
    created = create_appointment(data=create_request(clinic, at(9), at(10)), db=db, current_user=None)
    background_tasks = BackgroundTasks()

    book_appointment(
        appointment_id=created.id,
        data=BookAppointmentRequest(patient_id=clinic.patient_id),
        background_tasks=background_tasks,
        db=db,
        notifier=failing_notifier,
        current_user=None,
    )
    run_background(background_tasks)

    assert get_appointment(appointment_id=created.id, db=db).status == 'Scheduled'


def test_book_appointment_twice_returns_409(db, clinic, notifier) -> None:
    created = create_appointment(data=create_request(clinic, at(9), at(10)), db=db, current_user=None)
    book_appointment(
        appointment_id=created.id,
        data=BookAppointmentRequest(patient_id=clinic.patient_id),
        background_tasks=BackgroundTasks(),
        db=db,
        notifier=notifier,
        current_user=None,
    )

    with pytest.raises(HTTPException) as exception_info:
        book_appointment(
            appointment_id=created.id,
            data=BookAppointmentRequest(patient_id=clinic.other_patient_id),
            background_tasks=BackgroundTasks(),
            db=db,
            notifier=notifier,
            current_user=None,
        )

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This time slot has already been booked.'


def test_update_appointment_applies_sparse_patch(db, clinic, notifier) -> None:
    created = create_appointment(
        data=create_request(clinic, at(9), at(10), patient_id=clinic.patient_id, notes='Original', fee=Decimal('100')),
        db=db,
        current_user=None,
    )
    patch = AppointmentPatch.model_validate({'status': 'Completed'})
    background_tasks = BackgroundTasks()

    response = update_appointment(
        appointment_id=created.id,
        patch=patch,
        background_tasks=background_tasks,
        db=db,
        notifier=notifier,
        current_user=None,
    )

    assert response.status == 'Completed'
    assert response.notes == 'Original'
    assert response.fee == Decimal('100')
    assert (response.start_time, response.end_time) == (at(9), at(10))
    run_background(background_tasks)
    assert [subject for _, subject, _ in notifier.sent] == ['Appointment Updated']


def test_update_missing_appointment_returns_404(db, clinic, notifier) -> None:
    with pytest.raises(HTTPException) as exception_info:
        update_appointment(
            appointment_id=999,
            patch=AppointmentPatch(notes='x'),
            background_tasks=BackgroundTasks(),
            db=db,
            notifier=notifier,
            current_user=None,
        )

    assert exception_info.value.status_code == 404


def test_cancel_appointment_returns_cancelled_status(db, clinic, notifier) -> None:
    created = create_appointment(
        data=create_request(clinic, at(9), at(10), patient_id=clinic.patient_id),
        db=db,
        current_user=None,
    )
    background_tasks = BackgroundTasks()

    response = cancel_appointment(
        appointment_id=created.id,
        background_tasks=background_tasks,
        db=db,
        notifier=notifier,
        current_user=None,
    )

    assert response.status == 'Cancelled'
    run_background(background_tasks)
    assert [subject for _, subject, _ in notifier.sent] == ['Appointment Cancelled']


def test_delete_appointment_twice_returns_404(db, clinic) -> None:
    created = create_appointment(data=create_request(clinic, at(9), at(10)), db=db, current_user=None)

    assert delete_appointment(appointment_id=created.id, db=db, current_user=None) is None

    with pytest.raises(HTTPException) as exception_info:
        delete_appointment(appointment_id=created.id, db=db, current_user=None)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == f'Appointment not found with id: {created.id}'


def test_list_routes_filter_appointments(db, clinic) -> None:
    booked = create_appointment(
        data=create_request(clinic, at(9), at(10), patient_id=clinic.patient_id), db=db, current_user=None
    )
    open_slot = create_appointment(data=create_request(clinic, at(11), at(12)), db=db, current_user=None)

    assert [a.id for a in list_appointments(db=db)] == [booked.id, open_slot.id]
    assert [a.id for a in list_doctor_appointments(doctor_id=clinic.doctor_id, db=db)] == [booked.id, open_slot.id]
    assert [a.id for a in list_patient_appointments(patient_id=clinic.patient_id, db=db)] == [booked.id]
    assert [a.id for a in list_available_slots(doctor_id=clinic.doctor_id, db=db)] == [open_slot.id]
    assert all(isinstance(a, AppointmentResponse) for a in list_appointments(db=db))


def test_get_appointment_missing_returns_404(db, clinic) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_appointment(appointment_id=999, db=db)

    assert exception_info.value.status_code == 404


def test_persistence_error_maps_to_503() -> None:
    http_exception = to_http_exception(PersistenceError('Database unavailable.'))

    assert http_exception.status_code == 503
    assert http_exception.detail == 'Database unavailable.'


@pytest.mark.parametrize(
    ('start_time', 'end_time'),
    [
        ('2024-12-25T09:00:00Z', '2024-12-25T10:00:00'),
        ('2024-12-25T09:00:00+01:00', '2024-12-25T10:00:00+01:00'),
    ],
)
def test_create_appointment_request_rejects_timezone_offsets(start_time: str, end_time: str) -> None:
    with pytest.raises(ValidationError):
        CreateAppointmentRequest.model_validate(
            {'doctor_id': 1, 'schedule_id': 1, 'start_time': start_time, 'end_time': end_time}
        )


def test_update_appointment_reopening_booked_slot_returns_409(db, clinic, notifier) -> None:
    created = create_appointment(
        data=create_request(clinic, at(9), at(10), patient_id=clinic.patient_id), db=db, current_user=None
    )

    with pytest.raises(HTTPException) as exception_info:
        update_appointment(
            appointment_id=created.id,
            patch=AppointmentPatch(status='Available'),
            background_tasks=BackgroundTasks(),
            db=db,
            notifier=notifier,
            current_user=None,
        )

    assert exception_info.value.status_code == 409
    assert list_available_slots(doctor_id=clinic.doctor_id, db=db) == []


def test_list_appointments_maps_database_failure_to_503(db, clinic, monkeypatch) -> None:
    def failing_list_all(self):
        raise OperationalError('SELECT', {}, Exception('connection lost'))

    monkeypatch.setattr(AppointmentStore, 'list_all', failing_list_all)

    with pytest.raises(HTTPException) as exception_info:
        list_appointments(db=db)

    assert exception_info.value.status_code == 503
    assert exception_info.value.detail == DATABASE_UNAVAILABLE
