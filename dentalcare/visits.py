"""
Ciclo di vita delle visite: creazione, modifica, cambio stato, cancellazione
e interrogazioni.

Ogni operazione è un'unica transazione (db_session): prima le verifiche
(attori, relazione paziente-clinica, sovrapposizioni), poi la scrittura.
Le notifiche partono solo dopo il commit.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session, sessionmaker

from .conflicts import has_conflict
from .db import db_session
from .errors import InvalidRelationship, NotFound, SchedulingConflict, ValidationFailed
from .mailer import build_mail_sender
from .models import User, UserType, Visit, VisitStatus
from .notifications import VisitEvent, VisitNotifier
from .policies import Actor, ClinicActor, ClinicVisitsQuery, PatientActor, PatientVisitsQuery, scope
from .schemas import VisitCreateIn, VisitUpdateIn
from .store import DirectoryStore
from .time_utils import to_db
from .views import VisitView, visit_view

logger = logging.getLogger(__name__)

_LABELS = {UserType.PATIENT: "Paziente", UserType.CLINIC: "Clinica"}


def _require_user(store: DirectoryStore, user_id: int, user_type: UserType, lock: bool = False) -> User:
    """Utente esistente e del ruolo atteso; un ruolo diverso vale come assente."""
    user = store.lock_clinic(user_id) if lock else store.find_user(user_id)
    if user is None or user.user_type != user_type:
        raise NotFound(f"{_LABELS[user_type]} con ID {user_id} non trovato.")
    return user


def _ensure_party(visit: Visit, actor: Actor | None) -> None:
    """Cliniche e pazienti modificano solo le visite di cui sono parte."""
    if isinstance(actor, ClinicActor) and visit.clinic_id != actor.id:
        raise NotFound(f"Visita con ID {visit.id} non trovata.")
    if isinstance(actor, PatientActor) and visit.patient_id != actor.id:
        raise NotFound(f"Visita con ID {visit.id} non trovata.")


class VisitLifecycleManager:
    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        notifier: VisitNotifier | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.notifier = notifier or VisitNotifier(build_mail_sender())

    def _store(self):
        return db_session(self.session_factory)

    # =========================
    # Mutazioni
    # =========================
    def create(self, dto: VisitCreateIn, actor: Actor) -> VisitView:
        """
        Use case: prenotare una visita.
        - restringe la richiesta al perimetro dell'attore
        - verifica paziente, clinica e appartenenza del paziente alla clinica
        - verifica che l'orario non si sovrapponga ad altre visite della clinica
        - salva (stato PROGRAMADA se non indicato) e notifica
        """
        dto = scope(actor, dto)
        if dto.patient_id is None or dto.clinic_id is None:
            raise ValidationFailed("patient_id e clinic_id sono obbligatori.")

        start, end = to_db(dto.start_time), to_db(dto.end_time)
        if start >= end:
            raise ValidationFailed("start_time deve precedere end_time.")

        with self._store() as s:
            store = DirectoryStore(s)
            patient = _require_user(store, dto.patient_id, UserType.PATIENT)
            clinic = _require_user(store, dto.clinic_id, UserType.CLINIC, lock=True)

            if patient.clinic_id != clinic.id:
                raise InvalidRelationship("Il paziente non appartiene a questa clinica.")

            if has_conflict(store, clinic.id, start, end):
                raise SchedulingConflict("L'orario si sovrappone a una visita esistente.")

            visit = Visit(
                title=dto.title,
                start_time=start,
                end_time=end,
                type=dto.type,
                status=dto.status or VisitStatus.PROGRAMADA,
                notes=dto.notes,
                patient=patient,
                clinic=clinic,
            )
            store.add_visit(visit)
            view = visit_view(visit)

        logger.info("Visita %s creata: clinica=%s paziente=%s", view.id, view.clinic_id, view.patient_id)
        self.notifier.notify(VisitEvent.SCHEDULED, view)
        return view

    def update(self, visit_id: int, dto: VisitUpdateIn, actor: Actor) -> VisitView:
        dto = scope(actor, dto)
        # None su un campo obbligatorio = non inviato; le note invece si possono azzerare
        changes = {k: v for k, v in dto.changes().items() if v is not None or k == "notes"}

        with self._store() as s:
            store = DirectoryStore(s)
            visit = store.find_visit(visit_id)
            if visit is None:
                raise NotFound(f"Visita con ID {visit_id} non trovata.")
            _ensure_party(visit, actor)

            patient_id = changes.get("patient_id", visit.patient_id)
            clinic_id = changes.get("clinic_id", visit.clinic_id)
            clinic_changed = clinic_id != visit.clinic_id
            parties_changed = clinic_changed or patient_id != visit.patient_id
            times_changed = "start_time" in changes or "end_time" in changes

            if parties_changed:
                patient = _require_user(store, patient_id, UserType.PATIENT)
                clinic = _require_user(store, clinic_id, UserType.CLINIC, lock=True)
                if patient.clinic_id != clinic.id:
                    raise InvalidRelationship("Il paziente non appartiene a questa clinica.")
                visit.patient = patient
                visit.clinic = clinic

            if times_changed or clinic_changed:
                start = to_db(changes["start_time"]) if "start_time" in changes else visit.start_time
                end = to_db(changes["end_time"]) if "end_time" in changes else visit.end_time
                if start >= end:
                    raise ValidationFailed("start_time deve precedere end_time.")
                if not clinic_changed:
                    store.lock_clinic(clinic_id)
                if has_conflict(store, clinic_id, start, end, exclude_visit_id=visit.id):
                    raise SchedulingConflict("L'orario si sovrappone a una visita esistente.")
                visit.start_time = start
                visit.end_time = end

            for field in ("title", "type", "status", "notes"):
                if field in changes:
                    setattr(visit, field, changes[field])

            store.flush()
            view = visit_view(visit)

        logger.info("Visita %s aggiornata: campi=%s", view.id, sorted(changes))
        self.notifier.notify(VisitEvent.UPDATED, view)
        return view

    def update_status(self, visit_id: int, status: VisitStatus, actor: Actor | None = None) -> VisitView:
        """Sovrascrive lo stato (qualsiasi stato -> qualsiasi stato), senza notifiche."""
        with self._store() as s:
            store = DirectoryStore(s)
            visit = store.find_visit(visit_id)
            if visit is None:
                raise NotFound(f"Visita con ID {visit_id} non trovata.")
            _ensure_party(visit, actor)

            visit.status = status
            store.flush()
            view = visit_view(visit)

        logger.info("Visita %s: stato -> %s", view.id, status.value)
        return view

    def delete(self, visit_id: int, actor: Actor | None = None) -> VisitView:
        with self._store() as s:
            store = DirectoryStore(s)
            visit = store.find_visit(visit_id)
            if visit is None:
                raise NotFound(f"Visita con ID {visit_id} non trovata.")
            _ensure_party(visit, actor)

            # fotografia prima della rimozione, serve alle email
            view = visit_view(visit)
            store.delete_visit(visit)

        logger.info("Visita %s cancellata", view.id)
        self.notifier.notify(VisitEvent.CANCELED, view)
        return view

    # =========================
    # Query
    # =========================
    def get(self, visit_id: int) -> VisitView:
        with self._store() as s:
            visit = DirectoryStore(s).find_visit(visit_id)
            if visit is None:
                raise NotFound(f"Visita con ID {visit_id} non trovata.")
            return visit_view(visit)

    def list_all(self) -> list[VisitView]:
        with self._store() as s:
            return [visit_view(v) for v in DirectoryStore(s).list_visits()]

    def list_for_clinic(self, clinic_id: int, actor: Actor | None = None) -> list[VisitView]:
        if actor is not None:
            clinic_id = scope(actor, ClinicVisitsQuery(clinic_id)).clinic_id
        with self._store() as s:
            store = DirectoryStore(s)
            _require_user(store, clinic_id, UserType.CLINIC)
            return [visit_view(v) for v in store.list_visits(clinic_id=clinic_id)]

    def list_for_patient(self, patient_id: int, actor: Actor | None = None) -> list[VisitView]:
        if actor is not None:
            patient_id = scope(actor, PatientVisitsQuery(patient_id)).patient_id
        with self._store() as s:
            store = DirectoryStore(s)
            _require_user(store, patient_id, UserType.PATIENT)
            return [visit_view(v) for v in store.list_visits(patient_id=patient_id)]

    def occupied_slots(self, clinic_id: int, date_from: datetime, date_to: datetime) -> list[VisitView]:
        """Visite della clinica interamente comprese in [date_from, date_to]."""
        date_from, date_to = to_db(date_from), to_db(date_to)
        if date_from > date_to:
            raise ValidationFailed("date_from deve precedere date_to.")

        with self._store() as s:
            store = DirectoryStore(s)
            _require_user(store, clinic_id, UserType.CLINIC)
            visits = store.list_visits(clinic_id=clinic_id, starts_from=date_from, ends_by=date_to)
            return [visit_view(v) for v in visits]
