import os
from datetime import datetime, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')

from backend.auth.context import CallerContext  # noqa: E402
from backend.core.calendar import DayOfWeek  # noqa: E402
from backend.core.clock import FixedClock  # noqa: E402
from backend.database import Base  # noqa: E402
from backend.models.appointment import Appointment, AppointmentStatus, AppointmentType  # noqa: E402
from backend.models.penalty import AffiliatePenalty  # noqa: E402
from backend.models.schedule import UnavailabilityWindow, WeeklySchedule  # noqa: E402
from backend.models.user import Role, User  # noqa: E402
from backend.services.notification_service import NotificationChannel  # noqa: E402

# Monday 2026-01-05, 08:00. The following Monday is 2026-01-12.
NOW = datetime(2026, 1, 5, 8, 0)

TABLES = [
    User.__table__,
    WeeklySchedule.__table__,
    UnavailabilityWindow.__table__,
    Appointment.__table__,
    AffiliatePenalty.__table__,
]


class RecordingNotificationChannel(NotificationChannel):
    def __init__(self):
        self.events: list[tuple[int, dict]] = []

    def notify(self, specialist_id: int, event: dict) -> None:
        self.events.append((specialist_id, event))


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


@pytest.fixture(autouse=True)
def skip_schema_check(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr('backend.routes.common.ensure_database_ready', lambda: None)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def notifier() -> RecordingNotificationChannel:
    return RecordingNotificationChannel()


@pytest.fixture
def make_user(db):
    def _make_user(role: Role, email: str, active: bool = True) -> User:
        user = User(email=email, full_name=email.split('@')[0].title(), role=role.value, active=active)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def admin(make_user) -> User:
    return make_user(Role.ADMIN, 'admin@network.test')


@pytest.fixture
def affiliate(make_user) -> User:
    return make_user(Role.AFFILIATE, 'ana@network.test')


@pytest.fixture
def specialist(make_user) -> User:
    return make_user(Role.SPECIALIST, 'dr.perez@network.test')


@pytest.fixture
def admin_caller(admin) -> CallerContext:
    return CallerContext(user_id=admin.id, role=Role.ADMIN)


@pytest.fixture
def affiliate_caller(affiliate) -> CallerContext:
    return CallerContext(user_id=affiliate.id, role=Role.AFFILIATE)


@pytest.fixture
def specialist_caller(specialist) -> CallerContext:
    return CallerContext(user_id=specialist.id, role=Role.SPECIALIST)


@pytest.fixture
def make_schedule(db):
    def _make_schedule(
        specialist_id: int,
        day: DayOfWeek = DayOfWeek.MONDAY,
        start: time = time(9, 0),
        end: time = time(10, 0),
        slot_duration: int = 30,
        active: bool = True,
    ) -> WeeklySchedule:
        schedule = WeeklySchedule(
            specialist_id=specialist_id,
            day_of_week=day.value,
            start_time=start,
            end_time=end,
            slot_duration=slot_duration,
            active=active,
        )
        db.add(schedule)
        db.commit()
        db.refresh(schedule)
        return schedule

    return _make_schedule


@pytest.fixture
def make_appointment(db):
    def _make_appointment(
        affiliate_id: int,
        specialist_id: int,
        appointment_date,
        start: time = time(9, 0),
        end: time = time(9, 30),
        status: AppointmentStatus = AppointmentStatus.CONFIRMED,
    ) -> Appointment:
        appointment = Appointment(
            affiliate_id=affiliate_id,
            specialist_id=specialist_id,
            date=appointment_date,
            start_time=start,
            end_time=end,
            duration_minutes=30,
            appointment_type=AppointmentType.CONSULTATION.value,
            status=status.value,
            penalty_applied=False,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make_appointment
