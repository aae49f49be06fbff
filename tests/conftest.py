import os
from datetime import date, time
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from medbook.database import Base  # noqa: E402
from medbook.models.appointment import Appointment  # noqa: E402,F401
from medbook.models.doctor import Doctor  # noqa: E402
from medbook.models.patient import Patient  # noqa: E402
from medbook.models.schedule import ScheduleSlot  # noqa: E402
from medbook.models.status import SlotStatus  # noqa: E402
from medbook.models.user import User  # noqa: E402


class RecordingNotifier:
    def __init__(self, fail_for: set[str] | None = None):
        self.sent: list[tuple[str, str, str]] = []
        self.fail_for = fail_for or set()

    def notify(self, recipient: str, subject: str, body: str) -> None:
        if recipient in self.fail_for:
            raise ConnectionError(f'mail relay refused {recipient}')
        self.sent.append((recipient, subject, body))


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def seed_clinic(session) -> SimpleNamespace:
    doctor_user = User(email='doctor@test.com', first_name='John', last_name='Doe', role='doctor')
    patient_user = User(email='patient@test.com', first_name='Jane', last_name='Smith', role='patient')
    other_user = User(email='other@test.com', first_name='Sam', last_name='Lee', role='patient')

    doctor = Doctor(user=doctor_user, department='Cardiology')
    patient = Patient(user=patient_user)
    other_patient = Patient(user=other_user)
    session.add_all([doctor, patient, other_patient])
    session.flush()

    schedule = ScheduleSlot(
        doctor_id=doctor.id,
        work_date=date(2024, 12, 25),
        start_time=time(8, 0),
        end_time=time(17, 0),
        status=SlotStatus.AVAILABLE,
    )
    session.add(schedule)
    session.commit()

    return SimpleNamespace(
        doctor_id=doctor.id,
        patient_id=patient.id,
        other_patient_id=other_patient.id,
        schedule_id=schedule.id,
    )


@pytest.fixture
def clinic(db):
    return seed_clinic(db)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(fail_for={'patient@test.com'})


@pytest.fixture
def shared_database(tmp_path):
    """Two independent sessions on one file database, plus the seeded clinic."""
    engine = create_engine(f'sqlite:///{tmp_path / "shared.db"}')
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    first, second = session_factory(), session_factory()
    try:
        yield SimpleNamespace(first=first, second=second, clinic=seed_clinic(first))
    finally:
        first.close()
        second.close()
        engine.dispose()
