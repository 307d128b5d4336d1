"""
Anagrafica utenti: registrazione, profilo, login, cambio password e
assegnazione dei pazienti alle cliniche.

Gli oggetti User restituiti sono staccati dalla sessione (expire_on_commit=False):
contengono solo le colonne, non le relazioni.
"""
from __future__ import annotations

import logging
import secrets

from sqlalchemy.orm import Session, sessionmaker

from .auth_security import hash_password, verify_password
from .db import db_session
from .errors import DuplicateEmail, InvalidCredentials, InvalidRelationship, NotFound
from .models import User, UserType
from .schemas import UserCreateIn, UserUpdateIn
from .store import DirectoryStore

logger = logging.getLogger(__name__)


def _valid_clinic(store: DirectoryStore, clinic_id: int) -> User:
    clinic = store.find_user(clinic_id)
    if clinic is None or clinic.user_type != UserType.CLINIC:
        raise InvalidRelationship(f"ID clinica {clinic_id} non valido.")
    return clinic


def _require_user(store: DirectoryStore, user_id: int) -> User:
    user = store.find_user(user_id)
    if user is None:
        raise NotFound(f"Utente con ID {user_id} non trovato.")
    return user


def _require_patient(store: DirectoryStore, patient_id: int) -> User:
    patient = store.find_user(patient_id)
    if patient is None or patient.user_type != UserType.PATIENT:
        raise NotFound(f"Paziente con ID {patient_id} non trovato.")
    return patient


class UserDirectory:
    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self.session_factory = session_factory

    def _store(self):
        return db_session(self.session_factory)

    def create_user(self, dto: UserCreateIn) -> User:
        """
        - email univoca
        - un paziente con clinic_id deve puntare a una clinica
        - solo i pazienti hanno clinic_id
        - paziente senza password: password temporanea da cambiare al primo accesso
        """
        email = str(dto.email).strip().lower()
        with self._store() as s:
            store = DirectoryStore(s)
            if store.find_user_by_email(email):
                raise DuplicateEmail("Esiste già un utente con questa email.")

            clinic_id = None
            if dto.user_type == UserType.PATIENT and dto.clinic_id is not None:
                clinic_id = _valid_clinic(store, dto.clinic_id).id

            password = dto.password
            must_change = False
            if not password:
                password = secrets.token_urlsafe(12)
                must_change = True

            user = User(
                name=dto.name.strip(),
                email=email,
                password_hash=hash_password(password),
                user_type=dto.user_type,
                clinic_id=clinic_id,
                must_change_password=must_change,
            )
            store.add_user(user)

        logger.info("Utente %s creato (%s)", user.id, user.user_type.value)
        return user

    def list_users(self) -> list[User]:
        with self._store() as s:
            return DirectoryStore(s).list_users()

    def get_user(self, user_id: int) -> User:
        with self._store() as s:
            return _require_user(DirectoryStore(s), user_id)

    def find_by_email(self, email: str) -> User | None:
        with self._store() as s:
            return DirectoryStore(s).find_user_by_email(email)

    def update_user(self, user_id: int, dto: UserUpdateIn) -> User:
        changes = dto.model_dump(exclude_unset=True)
        with self._store() as s:
            store = DirectoryStore(s)
            user = _require_user(store, user_id)

            email = changes.get("email")
            if email:
                email = str(email).strip().lower()
                if email != user.email and store.find_user_by_email(email):
                    raise DuplicateEmail("Esiste già un utente con questa email.")
                user.email = email

            new_type = changes.get("user_type") or user.user_type
            if user.user_type == UserType.CLINIC and new_type != UserType.CLINIC:
                if store.list_users(user_type=UserType.PATIENT, clinic_id=user.id):
                    raise InvalidRelationship("La clinica ha ancora pazienti assegnati.")
                if store.list_visits(clinic_id=user.id):
                    raise InvalidRelationship("La clinica ha ancora visite in agenda.")
            if user.user_type == UserType.PATIENT and new_type != UserType.PATIENT:
                if store.list_visits(patient_id=user.id):
                    raise InvalidRelationship("Il paziente ha ancora visite in agenda.")

            if new_type == UserType.PATIENT:
                if "clinic_id" in changes:
                    clinic_id = changes["clinic_id"]
                    user.clinic_id = _valid_clinic(store, clinic_id).id if clinic_id is not None else None
            else:
                user.clinic_id = None
            user.user_type = new_type

            if changes.get("name"):
                user.name = changes["name"].strip()
            if changes.get("password"):
                user.password_hash = hash_password(changes["password"])
                user.must_change_password = False

            store.flush()

        logger.info("Utente %s aggiornato: campi=%s", user.id, sorted(k for k in changes if k != "password"))
        return user

    def delete_user(self, user_id: int) -> User:
        """Le visite dell'utente (come paziente o clinica) vengono cancellate con lui."""
        with self._store() as s:
            store = DirectoryStore(s)
            user = _require_user(store, user_id)
            store.delete_user(user)

        logger.info("Utente %s cancellato", user_id)
        return user

    def authenticate(self, email: str, password: str) -> User:
        with self._store() as s:
            user = DirectoryStore(s).find_user_by_email(email)
            if user is None or not verify_password(password, user.password_hash):
                raise InvalidCredentials("Credenziali non valide.")
            return user

    def change_password(self, user_id: int, current_password: str, new_password: str) -> User:
        with self._store() as s:
            store = DirectoryStore(s)
            user = _require_user(store, user_id)
            if not verify_password(current_password, user.password_hash):
                raise InvalidCredentials("La password attuale non è corretta.")
            user.password_hash = hash_password(new_password)
            user.must_change_password = False
            store.flush()
        return user

    # =========================
    # Pazienti e cliniche
    # =========================
    def clinic_patients(self, clinic_id: int) -> list[User]:
        with self._store() as s:
            store = DirectoryStore(s)
            clinic = store.find_user(clinic_id)
            if clinic is None or clinic.user_type != UserType.CLINIC:
                raise NotFound(f"Clinica con ID {clinic_id} non trovata.")
            return store.list_users(user_type=UserType.PATIENT, clinic_id=clinic_id)

    def assign_patient_to_clinic(self, patient_id: int, clinic_id: int) -> User:
        with self._store() as s:
            store = DirectoryStore(s)
            patient = _require_patient(store, patient_id)
            patient.clinic_id = _valid_clinic(store, clinic_id).id
            store.flush()

        logger.info("Paziente %s assegnato alla clinica %s", patient_id, clinic_id)
        return patient

    def remove_patient_from_clinic(self, patient_id: int) -> User:
        with self._store() as s:
            store = DirectoryStore(s)
            patient = _require_patient(store, patient_id)
            patient.clinic_id = None
            store.flush()

        logger.info("Paziente %s rimosso dalla clinica", patient_id)
        return patient
