"""
Rilevamento sovrapposizioni tra visite della stessa clinica.

Intervalli semiaperti [inizio, fine): due visite si sovrappongono se
``s1 < e2 and s2 < e1``. Visite consecutive (fine == inizio successivo)
sono ammesse; nessun buffer tra una visita e l'altra.
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Select, and_, select

from .models import Visit

if TYPE_CHECKING:
    from .store import DirectoryStore


def intervals_overlap(s1: datetime, e1: datetime, s2: datetime, e2: datetime) -> bool:
    return s1 < e2 and s2 < e1


def overlap_query(
    clinic_id: int,
    start: datetime,
    end: datetime,
    exclude_visit_id: int | None = None,
) -> Select:
    q = select(Visit).where(
        and_(
            Visit.clinic_id == clinic_id,
            # sovrapposizione [start,end)
            Visit.start_time < end,
            Visit.end_time > start,
        )
    )
    if exclude_visit_id is not None:
        q = q.where(Visit.id != exclude_visit_id)
    return q.order_by(Visit.start_time.asc()).limit(1)


def has_conflict(
    store: "DirectoryStore",
    clinic_id: int,
    start: datetime,
    end: datetime,
    exclude_visit_id: int | None = None,
) -> bool:
    return store.find_conflicting_visit(clinic_id, start, end, exclude_visit_id) is not None
