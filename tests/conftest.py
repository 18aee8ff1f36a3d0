import os
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from clinicbook.database import Base  # noqa: E402
from clinicbook.models import appointment, availability  # noqa: E402,F401
from clinicbook.models.user import ROLE_ADMIN, ROLE_DOCTOR, ROLE_PATIENT, User  # noqa: E402
from clinicbook.scheduling.locks import BookingLocks  # noqa: E402
from clinicbook.services.availability_service import AvailabilityService  # noqa: E402
from clinicbook.services.booking_service import BookingService  # noqa: E402

# Thursday; the next Monday is 2026-01-05.
NOW = datetime(2026, 1, 1, 8, 0)
NEXT_MONDAY = date(2026, 1, 5)


class FrozenClock:
    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)

    def set(self, value: datetime) -> None:
        self.current = value


def add_user(db, email: str, role: str, full_name: str = '') -> User:
    user = User(email=email, role=role, full_name=full_name or email.split('@')[0])
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


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


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def users(db):
    return {
        'dr_a': add_user(db, 'dr.a@clinic.test', ROLE_DOCTOR, 'Dr. A'),
        'dr_b': add_user(db, 'dr.b@clinic.test', ROLE_DOCTOR, 'Dr. B'),
        'p1': add_user(db, 'p1@example.test', ROLE_PATIENT),
        'p2': add_user(db, 'p2@example.test', ROLE_PATIENT),
        'admin': add_user(db, 'admin@clinic.test', ROLE_ADMIN),
    }


@pytest.fixture
def monday_calendar(db, users):
    doctor = users['dr_a']
    AvailabilityService(db).save_availability(
        doctor.id,
        doctor.id,
        available_days=['Mon'],
        windows=[('09:00', '10:00')],
        slot_duration_minutes=15,
    )
    return doctor


@pytest.fixture
def service(db, clock) -> BookingService:
    return BookingService(
        db,
        locks=BookingLocks(),
        clock=clock,
        min_lead_time=timedelta(hours=24),
        no_show_grace=timedelta(minutes=30),
    )
