import os

# prima di importare il pacchetto: config legge l'ambiente all'import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["EMAIL_HOST"] = ""
os.environ["DISPLAY_TIMEZONE"] = "UTC"

from datetime import datetime, timezone  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from dentalcare.api_main import create_app  # noqa: E402
from dentalcare.auth_security import hash_password  # noqa: E402
from dentalcare.db import db_session, init_db, make_engine, make_session_factory  # noqa: E402
from dentalcare.errors import DeliveryUnavailable  # noqa: E402
from dentalcare.models import User, UserType, Visit, VisitStatus, VisitType  # noqa: E402
from dentalcare.notifications import VisitNotifier  # noqa: E402
from dentalcare.users import UserDirectory  # noqa: E402
from dentalcare.visits import VisitLifecycleManager  # noqa: E402

PASSWORD = "secret123"


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class RecordingMailSender:
    """Registra le email invece di spedirle; con fail=True simula SMTP giù."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[dict[str, Any]] = []

    def send(self, to: str, template: str, context: dict[str, Any], subject: str = "") -> None:
        if self.fail:
            raise DeliveryUnavailable("SMTP non raggiungibile")
        self.sent.append({"to": to, "template": template, "context": context, "subject": subject})


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def mail():
    return RecordingMailSender()


@pytest.fixture
def visits(session_factory, mail):
    return VisitLifecycleManager(session_factory, VisitNotifier(mail, tz="UTC"))


@pytest.fixture
def directory(session_factory):
    return UserDirectory(session_factory)


@pytest.fixture
def make_user(session_factory):
    def _make(
        user_id: int,
        user_type: UserType,
        clinic_id: int | None = None,
        name: str | None = None,
        email: str | None = None,
    ) -> User:
        with db_session(session_factory) as s:
            u = User(
                id=user_id,
                name=name or f"{user_type.value.title()} {user_id}",
                email=email or f"user{user_id}@example.com",
                password_hash=hash_password(PASSWORD),
                user_type=user_type,
                clinic_id=clinic_id,
            )
            s.add(u)
        return u

    return _make


@pytest.fixture
def insert_visit(session_factory):
    """Inserisce una visita direttamente, senza controlli (per preparare stati anomali)."""

    def _insert(patient_id: int, clinic_id: int, start: datetime, end: datetime, **extra) -> int:
        with db_session(session_factory) as s:
            v = Visit(
                title=extra.pop("title", "Visita"),
                start_time=start.replace(tzinfo=None),
                end_time=end.replace(tzinfo=None),
                type=extra.pop("type", VisitType.CONSULTA),
                status=extra.pop("status", VisitStatus.PROGRAMADA),
                patient_id=patient_id,
                clinic_id=clinic_id,
                **extra,
            )
            s.add(v)
            s.flush()
            return v.id

    return _insert


@pytest.fixture
def clinic_setup(make_user):
    """Admin 1, clinica 10 con paziente 20, clinica 11 con paziente 21, paziente 22 senza clinica."""
    make_user(1, UserType.ADMIN, name="Admin", email="admin@example.com")
    make_user(10, UserType.CLINIC, name="Clinica Centro", email="centro@example.com")
    make_user(11, UserType.CLINIC, name="Clinica Norte", email="norte@example.com")
    make_user(20, UserType.PATIENT, clinic_id=10, name="Ana Pérez", email="ana@example.com")
    make_user(21, UserType.PATIENT, clinic_id=11, name="Luis Gómez", email="luis@example.com")
    make_user(22, UserType.PATIENT, name="Sin Clínica", email="libre@example.com")


@pytest.fixture
def api_client(session_factory, mail, clinic_setup):
    app = create_app(session_factory=session_factory, mail_sender=mail, init_database=False)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def login(api_client):
    def _login(email: str, password: str = PASSWORD) -> dict[str, str]:
        resp = api_client.post("/users/login", data={"username": email, "password": password})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}

    return _login
