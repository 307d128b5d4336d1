from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime

from .models import User, Visit, VisitStatus, VisitType
from .time_utils import from_db


@dataclass(frozen=True)
class PartySummary:
    id: int
    name: str
    email: str


@dataclass(frozen=True)
class VisitView:
    """
    Fotografia 'flat' di una visita con paziente e clinica.
    Sopravvive alla chiusura della sessione (niente lazy-load).
    """
    id: int
    title: str
    start_time: datetime
    end_time: datetime
    type: VisitType
    status: VisitStatus
    notes: str | None
    patient_id: int
    clinic_id: int
    created_at: datetime
    updated_at: datetime
    patient: PartySummary
    clinic: PartySummary

    def to_dict(self) -> dict:
        return asdict(self)


def party_summary(user: User) -> PartySummary:
    return PartySummary(id=user.id, name=user.name, email=user.email)


def visit_view(visit: Visit) -> VisitView:
    return VisitView(
        id=visit.id,
        title=visit.title,
        start_time=from_db(visit.start_time),
        end_time=from_db(visit.end_time),
        type=visit.type,
        status=visit.status,
        notes=visit.notes,
        patient_id=visit.patient_id,
        clinic_id=visit.clinic_id,
        created_at=from_db(visit.created_at),
        updated_at=from_db(visit.updated_at),
        patient=party_summary(visit.patient),
        clinic=party_summary(visit.clinic),
    )
