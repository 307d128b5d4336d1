from __future__ import annotations

from datetime import datetime

from sqlalchemy import and_, select
from sqlalchemy.orm import Session, joinedload

from .conflicts import overlap_query
from .models import User, UserType, Visit


class DirectoryStore:
    """
    Accesso a utenti e visite dentro una singola sessione (unità di lavoro).
    Nessuna cache: ogni metodo legge dal DB. Commit/rollback restano a carico
    di chi ha aperto la sessione (vedi db.db_session).
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    # =========================
    # Utenti
    # =========================
    def find_user(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def find_user_by_email(self, email: str) -> User | None:
        q = select(User).where(User.email == email.strip().lower())
        return self.session.execute(q).scalar_one_or_none()

    def list_users(self, user_type: UserType | None = None, clinic_id: int | None = None) -> list[User]:
        q = select(User)
        if user_type is not None:
            q = q.where(User.user_type == user_type)
        if clinic_id is not None:
            q = q.where(User.clinic_id == clinic_id)
        return list(self.session.scalars(q.order_by(User.id.asc())))

    def add_user(self, user: User) -> User:
        self.session.add(user)
        self.session.flush()
        return user

    def delete_user(self, user: User) -> None:
        self.session.delete(user)
        self.session.flush()

    def lock_clinic(self, clinic_id: int) -> User | None:
        """
        Blocca la riga della clinica fino a fine transazione: le prenotazioni
        della stessa clinica vengono serializzate (controllo + scrittura).
        Su SQLite FOR UPDATE viene ignorato.
        """
        q = select(User).where(User.id == clinic_id).with_for_update()
        return self.session.execute(q).scalar_one_or_none()

    # =========================
    # Visite
    # =========================
    def find_visit(self, visit_id: int) -> Visit | None:
        q = (
            select(Visit)
            .options(joinedload(Visit.patient), joinedload(Visit.clinic))
            .where(Visit.id == visit_id)
        )
        return self.session.execute(q).scalar_one_or_none()

    def list_visits(
        self,
        clinic_id: int | None = None,
        patient_id: int | None = None,
        starts_from: datetime | None = None,
        ends_by: datetime | None = None,
    ) -> list[Visit]:
        conditions = []
        if clinic_id is not None:
            conditions.append(Visit.clinic_id == clinic_id)
        if patient_id is not None:
            conditions.append(Visit.patient_id == patient_id)
        if starts_from is not None:
            conditions.append(Visit.start_time >= starts_from)
        if ends_by is not None:
            conditions.append(Visit.end_time <= ends_by)

        q = select(Visit).options(joinedload(Visit.patient), joinedload(Visit.clinic))
        if conditions:
            q = q.where(and_(*conditions))
        q = q.order_by(Visit.start_time.asc(), Visit.id.asc())
        return list(self.session.scalars(q))

    def add_visit(self, visit: Visit) -> Visit:
        self.session.add(visit)
        self.session.flush()
        return visit

    def delete_visit(self, visit: Visit) -> None:
        self.session.delete(visit)
        self.session.flush()

    def find_conflicting_visit(
        self,
        clinic_id: int,
        start: datetime,
        end: datetime,
        exclude_visit_id: int | None = None,
    ) -> Visit | None:
        return self.session.scalars(overlap_query(clinic_id, start, end, exclude_visit_id)).first()

    def flush(self) -> None:
        self.session.flush()
