"""
Attori e restrizioni per ruolo.

Il ruolo è una colonna di ``users``, ma chi agisce viene rappresentato come
unione etichettata: solo ``PatientActor`` ha una clinica di appartenenza.
Le funzioni qui sono pure: ricevono una richiesta e ne restituiscono una
copia ristretta al perimetro dell'attore.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Union

from .errors import Forbidden, PreconditionError
from .models import User, UserType, VisitStatus
from .schemas import VisitCreateIn, VisitUpdateIn


@dataclass(frozen=True)
class AdminActor:
    id: int
    role: ClassVar[UserType] = UserType.ADMIN


@dataclass(frozen=True)
class ClinicActor:
    id: int
    role: ClassVar[UserType] = UserType.CLINIC


@dataclass(frozen=True)
class PatientActor:
    id: int
    clinic_id: int | None = None
    role: ClassVar[UserType] = UserType.PATIENT


Actor = Union[AdminActor, ClinicActor, PatientActor]


@dataclass(frozen=True)
class ClinicVisitsQuery:
    clinic_id: int


@dataclass(frozen=True)
class PatientVisitsQuery:
    patient_id: int


def actor_from_user(user: User) -> Actor:
    if user.user_type == UserType.ADMIN:
        return AdminActor(user.id)
    if user.user_type == UserType.CLINIC:
        return ClinicActor(user.id)
    return PatientActor(user.id, user.clinic_id)


def require_roles(actor: Actor, *roles: UserType) -> None:
    if actor.role not in roles:
        raise Forbidden("Operazione non consentita per il ruolo " + actor.role.value)


def scope_visit_create(actor: Actor, dto: VisitCreateIn) -> VisitCreateIn:
    if isinstance(actor, ClinicActor):
        # una clinica crea visite solo per sé stessa
        return dto.model_copy(update={"clinic_id": actor.id})

    if isinstance(actor, PatientActor):
        if actor.clinic_id is None:
            raise PreconditionError("Il paziente deve essere assegnato a una clinica.")
        return dto.model_copy(
            update={
                "patient_id": actor.id,
                "clinic_id": actor.clinic_id,
                "status": VisitStatus.PROGRAMADA,
            }
        )

    return dto


def scope_visit_update(actor: Actor, dto: VisitUpdateIn) -> VisitUpdateIn:
    changes = dto.changes()

    if isinstance(actor, ClinicActor):
        if "clinic_id" in changes:
            changes["clinic_id"] = actor.id
        return VisitUpdateIn(**changes)

    if isinstance(actor, PatientActor):
        # il paziente tocca solo titolo, orari, tipo e note
        for field in ("patient_id", "clinic_id", "status"):
            changes.pop(field, None)
        return VisitUpdateIn(**changes)

    return dto


def narrow_clinic_id(actor: Actor, clinic_id: int) -> int:
    """Una clinica che chiede i dati di un'altra viene riportata ai propri."""
    if isinstance(actor, ClinicActor) and clinic_id != actor.id:
        return actor.id
    return clinic_id


def narrow_patient_id(actor: Actor, patient_id: int) -> int:
    if isinstance(actor, PatientActor) and patient_id != actor.id:
        return actor.id
    return patient_id


def scope(actor: Actor, request):
    """Punto d'ingresso unico: restringe qualsiasi richiesta nota."""
    if isinstance(request, VisitCreateIn):
        return scope_visit_create(actor, request)
    if isinstance(request, VisitUpdateIn):
        return scope_visit_update(actor, request)
    if isinstance(request, ClinicVisitsQuery):
        return ClinicVisitsQuery(narrow_clinic_id(actor, request.clinic_id))
    if isinstance(request, PatientVisitsQuery):
        return PatientVisitsQuery(narrow_patient_id(actor, request.patient_id))
    raise TypeError(f"Richiesta non gestita: {type(request).__name__}")
