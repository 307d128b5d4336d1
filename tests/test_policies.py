from datetime import datetime, timezone

import pytest

from dentalcare.errors import Forbidden, PreconditionError
from dentalcare.models import User, UserType, VisitStatus, VisitType
from dentalcare.policies import (
    AdminActor,
    ClinicActor,
    ClinicVisitsQuery,
    PatientActor,
    PatientVisitsQuery,
    actor_from_user,
    require_roles,
    scope,
)
from dentalcare.schemas import VisitCreateIn, VisitUpdateIn


def create_dto(**overrides) -> VisitCreateIn:
    data = dict(
        title="Controllo",
        start_time=datetime(2025, 1, 10, 9, tzinfo=timezone.utc),
        end_time=datetime(2025, 1, 10, 10, tzinfo=timezone.utc),
        type=VisitType.CONSULTA,
        patient_id=20,
        clinic_id=99,
        status=VisitStatus.CONFIRMADA,
    )
    data.update(overrides)
    return VisitCreateIn(**data)


def test_actor_from_user_tags_roles():
    assert actor_from_user(User(id=1, user_type=UserType.ADMIN)) == AdminActor(1)
    assert actor_from_user(User(id=10, user_type=UserType.CLINIC)) == ClinicActor(10)
    assert actor_from_user(User(id=20, user_type=UserType.PATIENT, clinic_id=10)) == PatientActor(20, 10)


def test_clinic_create_forced_to_own_clinic():
    dto = scope(ClinicActor(10), create_dto())
    assert dto.clinic_id == 10
    assert dto.patient_id == 20
    assert dto.status == VisitStatus.CONFIRMADA


def test_patient_create_overrides_ids_and_status():
    dto = scope(PatientActor(20, clinic_id=10), create_dto(patient_id=55))
    assert (dto.patient_id, dto.clinic_id, dto.status) == (20, 10, VisitStatus.PROGRAMADA)


def test_patient_without_clinic_cannot_create():
    with pytest.raises(PreconditionError):
        scope(PatientActor(22), create_dto())


def test_admin_create_untouched():
    dto = create_dto()
    assert scope(AdminActor(1), dto) is dto


def test_patient_update_strips_protected_fields():
    dto = VisitUpdateIn(notes="n", patient_id=5, clinic_id=6, status=VisitStatus.COMPLETADA)
    scoped = scope(PatientActor(20, 10), dto)
    assert scoped.changes() == {"notes": "n"}


def test_clinic_update_forces_clinic_only_when_sent():
    assert scope(ClinicActor(10), VisitUpdateIn(clinic_id=11)).changes() == {"clinic_id": 10}
    assert scope(ClinicActor(10), VisitUpdateIn(title="x")).changes() == {"title": "x"}


def test_listing_redirects_to_self():
    assert scope(ClinicActor(10), ClinicVisitsQuery(11)) == ClinicVisitsQuery(10)
    assert scope(PatientActor(20, 10), PatientVisitsQuery(21)) == PatientVisitsQuery(20)
    assert scope(AdminActor(1), ClinicVisitsQuery(11)) == ClinicVisitsQuery(11)
    # una clinica può consultare i pazienti
    assert scope(ClinicActor(10), PatientVisitsQuery(21)) == PatientVisitsQuery(21)


def test_require_roles():
    require_roles(AdminActor(1), UserType.ADMIN)
    with pytest.raises(Forbidden):
        require_roles(PatientActor(20, 10), UserType.CLINIC, UserType.ADMIN)


def test_scope_rejects_unknown_request():
    with pytest.raises(TypeError):
        scope(AdminActor(1), object())
