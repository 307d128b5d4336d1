import pytest

from dentalcare.auth_security import verify_password
from dentalcare.errors import DuplicateEmail, InvalidCredentials, InvalidRelationship, NotFound
from dentalcare.models import UserType
from dentalcare.schemas import UserCreateIn, UserUpdateIn
from tests.conftest import PASSWORD, utc


@pytest.fixture(autouse=True)
def _setup(clinic_setup):
    pass


def test_create_patient_with_clinic(directory):
    u = directory.create_user(
        UserCreateIn(name=" Marta ", email="Marta@Example.com", password="abcdef", user_type=UserType.PATIENT, clinic_id=10)
    )
    assert u.email == "marta@example.com"
    assert u.name == "Marta"
    assert u.clinic_id == 10
    assert not u.must_change_password
    assert directory.find_by_email("MARTA@example.com").id == u.id


def test_create_patient_without_password_gets_temporary_one(directory):
    u = directory.create_user(UserCreateIn(name="Temp", email="temp@example.com", user_type=UserType.PATIENT))
    assert u.must_change_password
    assert u.password_hash


def test_password_required_for_clinic():
    with pytest.raises(ValueError):
        UserCreateIn(name="C", email="c@example.com", user_type=UserType.CLINIC)


def test_duplicate_email(directory):
    with pytest.raises(DuplicateEmail):
        directory.create_user(
            UserCreateIn(name="Ana 2", email="ANA@example.com", password="abcdef", user_type=UserType.PATIENT)
        )


def test_patient_clinic_must_be_a_clinic(directory):
    with pytest.raises(InvalidRelationship):
        directory.create_user(
            UserCreateIn(name="X", email="x@example.com", password="abcdef", user_type=UserType.PATIENT, clinic_id=20)
        )


def test_non_patient_never_keeps_clinic(directory):
    u = directory.create_user(
        UserCreateIn(name="Admin 2", email="a2@example.com", password="abcdef", user_type=UserType.ADMIN, clinic_id=10)
    )
    assert u.clinic_id is None


def test_update_user_fields(directory):
    u = directory.update_user(20, UserUpdateIn(name="Ana María", password="newpass1"))
    assert u.name == "Ana María"
    assert u.clinic_id == 10  # invariato se non inviato
    assert directory.authenticate("ana@example.com", "newpass1").id == 20

    with pytest.raises(DuplicateEmail):
        directory.update_user(20, UserUpdateIn(email="luis@example.com"))
    with pytest.raises(NotFound):
        directory.update_user(999, UserUpdateIn(name="x"))


def test_update_role_clears_clinic(directory):
    u = directory.update_user(20, UserUpdateIn(user_type=UserType.ADMIN))
    assert u.user_type == UserType.ADMIN
    assert u.clinic_id is None


def test_clinic_with_patients_cannot_change_role(directory):
    with pytest.raises(InvalidRelationship):
        directory.update_user(10, UserUpdateIn(user_type=UserType.PATIENT))


def test_patient_with_visits_cannot_change_role(directory, visits, insert_visit):
    insert_visit(20, 10, utc(2025, 1, 10, 9), utc(2025, 1, 10, 10))
    for role in (UserType.ADMIN, UserType.CLINIC):
        with pytest.raises(InvalidRelationship):
            directory.update_user(20, UserUpdateIn(user_type=role))

    assert directory.get_user(20).user_type == UserType.PATIENT
    assert len(visits.list_for_patient(20)) == 1


def test_clinic_with_visits_cannot_change_role(directory, visits, insert_visit):
    insert_visit(20, 10, utc(2025, 1, 10, 9), utc(2025, 1, 10, 10))
    # nessun paziente assegnato, ma la visita resta in agenda
    directory.remove_patient_from_clinic(20)

    with pytest.raises(InvalidRelationship):
        directory.update_user(10, UserUpdateIn(user_type=UserType.PATIENT))

    assert directory.get_user(10).user_type == UserType.CLINIC
    assert len(visits.list_for_clinic(10)) == 1


def test_clinic_without_patients_or_visits_can_change_role(directory):
    directory.remove_patient_from_clinic(21)
    u = directory.update_user(11, UserUpdateIn(user_type=UserType.ADMIN))
    assert u.user_type == UserType.ADMIN


def test_update_rejects_blank_name(directory):
    with pytest.raises(ValueError):
        UserUpdateIn(name="   ")
    assert directory.update_user(20, UserUpdateIn(name="  Ana  ")).name == "Ana"


def test_authenticate_and_change_password(directory):
    assert directory.authenticate("ana@example.com", PASSWORD).id == 20
    with pytest.raises(InvalidCredentials):
        directory.authenticate("ana@example.com", "wrong")
    with pytest.raises(InvalidCredentials):
        directory.authenticate("nobody@example.com", PASSWORD)

    with pytest.raises(InvalidCredentials):
        directory.change_password(20, "wrong", "another1")
    u = directory.change_password(20, PASSWORD, "another1")
    assert verify_password("another1", u.password_hash)
    assert not u.must_change_password


def test_clinic_patients_and_assignment(directory):
    assert [p.id for p in directory.clinic_patients(10)] == [20]
    with pytest.raises(NotFound):
        directory.clinic_patients(20)

    assert directory.assign_patient_to_clinic(22, 10).clinic_id == 10
    assert [p.id for p in directory.clinic_patients(10)] == [20, 22]

    with pytest.raises(InvalidRelationship):
        directory.assign_patient_to_clinic(22, 21)
    with pytest.raises(NotFound):
        directory.assign_patient_to_clinic(10, 11)

    assert directory.remove_patient_from_clinic(20).clinic_id is None
    assert [p.id for p in directory.clinic_patients(10)] == [22]


def test_delete_user(directory):
    directory.delete_user(22)
    with pytest.raises(NotFound):
        directory.get_user(22)
    with pytest.raises(NotFound):
        directory.delete_user(22)


def test_verify_password_rejects_unknown_hash_format():
    assert not verify_password(PASSWORD, "non-un-hash")
