from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from .auth_security import hash_password
from .db import db_session
from .models import User, UserType, Visit, VisitStatus, VisitType
from .time_utils import utcnow

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "123456"

ADMIN = ("Admin User", "admin@dentalcare-demo.com")
CLINIC = ("Clínica Dental Centro", "clinic@dentalcare-demo.com")
PATIENTS = [
    ("Sarah Johnson", "patient1@dentalcare-demo.com"),
    ("Michael Brown", "patient2@dentalcare-demo.com"),
    ("Emma Wilson", "patient3@dentalcare-demo.com"),
]


def _get_or_create(s: Session, name: str, email: str, user_type: UserType, pw_hash: str, clinic_id: int | None = None) -> User:
    u = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if u is None:
        u = User(name=name, email=email, password_hash=pw_hash, user_type=user_type, clinic_id=clinic_id)
        s.add(u)
        s.flush()
    return u


def seed_base(session_factory: sessionmaker[Session] | None = None, now: datetime | None = None) -> None:
    """
    Popola dati demo (idempotente):
    - un admin, una clinica, tre pazienti della clinica (password 123456)
    - una visita per paziente, solo se il paziente non ne ha già
    """
    now = now or utcnow()
    tomorrow = (now + timedelta(days=1)).replace(hour=9, minute=0, second=0, microsecond=0)
    next_week = (now + timedelta(days=7)).replace(hour=10, minute=0, second=0, microsecond=0)

    visits = [
        ("Limpieza", VisitType.LIMPIEZA, tomorrow, timedelta(hours=1), "Limpieza de rutina"),
        ("Consulta", VisitType.CONSULTA, tomorrow + timedelta(hours=2), timedelta(hours=1), "Primera consulta por dolor de muela"),
        ("Empaste", VisitType.EMPASTE, next_week, timedelta(minutes=90), "Empaste por caries"),
    ]

    with db_session(session_factory) as s:
        pw_hash = hash_password(DEMO_PASSWORD)
        _get_or_create(s, *ADMIN, UserType.ADMIN, pw_hash)
        clinic = _get_or_create(s, *CLINIC, UserType.CLINIC, pw_hash)

        for (name, email), (label, vtype, start, duration, notes) in zip(PATIENTS, visits):
            patient = _get_or_create(s, name, email, UserType.PATIENT, pw_hash, clinic_id=clinic.id)
            has_visits = s.execute(select(Visit.id).where(Visit.patient_id == patient.id).limit(1)).first()
            if has_visits:
                continue
            s.add(
                Visit(
                    title=f"{name} - {label}",
                    start_time=start,
                    end_time=start + duration,
                    type=vtype,
                    status=VisitStatus.PROGRAMADA,
                    notes=notes,
                    patient_id=patient.id,
                    clinic_id=clinic.id,
                )
            )

    logger.info("Seed completato (password demo: %s)", DEMO_PASSWORD)
