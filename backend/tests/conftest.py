import os
import tempfile
from datetime import datetime, timezone
from decimal import Decimal

_DB_DIR = tempfile.mkdtemp(prefix="dental_clinic_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("CLINIC_TIMEZONE", "UTC")

import pytest
from fastapi.testclient import TestClient

from dental_clinic.db.session import SessionLocal, engine
from dental_clinic.deps import get_clock, get_notifier
from dental_clinic.main import app
from dental_clinic.models import Base, Dentist, Role, Service, ServiceCategory
from dental_clinic.routers.auth import LOGIN_IP_LIMITER, LOGIN_LIMITER
from dental_clinic.routers.bookings import BOOKING_LIMITER
from dental_clinic.services.context import Actor, SchedulerContext
from dental_clinic.services.users import create_user, get_user_by_email

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "ChangeMe123!"
DEFAULT_PASSWORD = "Sup3rSecret!pw"


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.fail = False

    def notify(self, **kwargs) -> None:
        if self.fail:
            raise RuntimeError("notification backend down")
        self.sent.append(kwargs)


@pytest.fixture(autouse=True)
def _fresh_database():
    Base.metadata.create_all(bind=engine)
    for limiter in (LOGIN_LIMITER, LOGIN_IP_LIMITER, BOOKING_LIMITER):
        limiter.reset()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    # Thursday 2024-02-01, before every booking used in the tests
    return FrozenClock(datetime(2024, 2, 1, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role: Role = Role.patient, *, email: str | None = None, full_name: str | None = None):
        counter["n"] += 1
        return create_user(
            db,
            email=email or f"{role.value}{counter['n']}@example.com",
            password=DEFAULT_PASSWORD,
            full_name=full_name or f"{role.value.title()} {counter['n']}",
            role=role,
        )

    return _make


@pytest.fixture
def make_dentist(db, make_user):
    counter = {"n": 0}

    def _make(*, consultation_fee: str = "50.00", is_active: bool = True) -> Dentist:
        counter["n"] += 1
        user = make_user(Role.dentist)
        dentist = Dentist(
            user_id=user.id,
            license_number=f"LIC-{counter['n']:04d}",
            years_of_experience=5,
            consultation_fee=Decimal(consultation_fee),
            is_active=is_active,
        )
        db.add(dentist)
        db.commit()
        db.refresh(dentist)
        return dentist

    return _make


@pytest.fixture
def make_service(db):
    counter = {"n": 0}

    def _make(*, duration_minutes: int = 60, price: str = "120.00", is_active: bool = True) -> Service:
        counter["n"] += 1
        service = Service(
            name=f"Service {counter['n']}",
            description="",
            category=ServiceCategory.general,
            duration_minutes=duration_minutes,
            price=Decimal(price),
            is_active=is_active,
        )
        db.add(service)
        db.commit()
        db.refresh(service)
        return service

    return _make


@pytest.fixture
def make_ctx(db, clock, notifier):
    def _make(user, *, session=None) -> SchedulerContext:
        return SchedulerContext(
            db=session or db,
            actor=Actor.from_user(user),
            notifier=notifier,
            clock=clock,
        )

    return _make


@pytest.fixture
def api_client(clock, notifier):
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as client:
        session = SessionLocal()
        try:
            if get_user_by_email(session, ADMIN_EMAIL) is None:
                create_user(session, email=ADMIN_EMAIL, password=ADMIN_PASSWORD, full_name="Admin", role=Role.admin)
        finally:
            session.close()
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def login(api_client):
    def _login(email: str, password: str = DEFAULT_PASSWORD) -> dict:
        response = api_client.post("/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        token = response.json().get("access_token")
        assert token, "Missing access_token in login response"
        return {"Authorization": f"Bearer {token}"}

    return _login


@pytest.fixture
def auth_headers(login):
    return login(ADMIN_EMAIL, ADMIN_PASSWORD)
