from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from sqlalchemy.orm import Session, sessionmaker

from . import config
from .auth_security import create_access_token, get_subject
from .db import SessionLocal, init_db
from .errors import DomainError, Forbidden, InvalidCredentials, NotFound
from .mailer import MailSender, build_mail_sender
from .models import User, UserType
from .notifications import VisitNotifier
from .policies import Actor, actor_from_user, narrow_clinic_id, require_roles
from .schemas import (
    ChangePasswordIn,
    MailTestIn,
    TokenOut,
    UserCreateIn,
    UserOut,
    UserUpdateIn,
    VisitCreateIn,
    VisitOut,
    VisitStatusIn,
    VisitUpdateIn,
)
from .seed import seed_base
from .users import UserDirectory
from .views import VisitView
from .visits import VisitLifecycleManager

logger = logging.getLogger(__name__)

# OAuth2 Bearer (Authorization: Bearer <token>); username = email
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/users/login")


def _user_out(user: User) -> UserOut:
    return UserOut.model_validate(user)


def _visit_out(view: VisitView) -> VisitOut:
    return VisitOut(**view.to_dict())



# Dipendenze

def get_directory(request: Request) -> UserDirectory:
    return UserDirectory(request.app.state.session_factory)


def get_visits(request: Request, background_tasks: BackgroundTasks) -> VisitLifecycleManager:
    # email inviate dopo la risposta: l'esito della mutazione non aspetta l'SMTP
    notifier = VisitNotifier(request.app.state.mail_sender, defer=background_tasks.add_task)
    return VisitLifecycleManager(request.app.state.session_factory, notifier)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    directory: UserDirectory = Depends(get_directory),
) -> User:
    # protezione extra: elimina spazi / virgolette accidentali
    token = token.strip().strip('"').strip("'")

    subject = get_subject(token)
    if not subject or not subject.isdigit():
        raise InvalidCredentials("Token non valido.")

    try:
        return directory.get_user(int(subject))
    except NotFound:
        raise InvalidCredentials("Utente non valido.")


def get_actor(user: User = Depends(get_current_user)) -> Actor:
    return actor_from_user(user)


def allow_roles(*roles: UserType) -> Callable[..., Actor]:
    """Guard di ruolo: restituisce l'attore se il suo ruolo è tra quelli ammessi."""

    def _guard(actor: Actor = Depends(get_actor)) -> Actor:
        require_roles(actor, *roles)
        return actor

    return _guard


ALL_ROLES = (UserType.ADMIN, UserType.CLINIC, UserType.PATIENT)



# USERS endpoints

users_router = APIRouter(prefix="/users", tags=["users"])


@users_router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreateIn, directory: UserDirectory = Depends(get_directory)) -> UserOut:
    return _user_out(directory.create_user(payload))


@users_router.post("/login", response_model=TokenOut)
def login(
    form: OAuth2PasswordRequestForm = Depends(),
    directory: UserDirectory = Depends(get_directory),
) -> TokenOut:
    u = directory.authenticate(form.username, form.password)
    token = create_access_token(subject=str(u.id), extra={"email": u.email, "user_type": u.user_type.value})
    return TokenOut(access_token=token, user=_user_out(u))


@users_router.get("", response_model=list[UserOut])
def list_users(
    actor: Actor = Depends(allow_roles(UserType.ADMIN)),
    directory: UserDirectory = Depends(get_directory),
) -> list[UserOut]:
    return [_user_out(u) for u in directory.list_users()]


@users_router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)) -> UserOut:
    return _user_out(user)


@users_router.put("/change-password", response_model=UserOut)
def change_password(
    payload: ChangePasswordIn,
    user: User = Depends(get_current_user),
    directory: UserDirectory = Depends(get_directory),
) -> UserOut:
    return _user_out(directory.change_password(user.id, payload.current_password, payload.new_password))


@users_router.get("/clinic/{clinic_id}/patients", response_model=list[UserOut])
def clinic_patients(
    clinic_id: int,
    actor: Actor = Depends(allow_roles(UserType.CLINIC, UserType.ADMIN)),
    directory: UserDirectory = Depends(get_directory),
) -> list[UserOut]:
    return [_user_out(u) for u in directory.clinic_patients(narrow_clinic_id(actor, clinic_id))]


@users_router.post("/patient/{patient_id}/assign-clinic/{clinic_id}", response_model=UserOut)
def assign_patient_to_clinic(
    patient_id: int,
    clinic_id: int,
    actor: Actor = Depends(allow_roles(UserType.ADMIN)),
    directory: UserDirectory = Depends(get_directory),
) -> UserOut:
    return _user_out(directory.assign_patient_to_clinic(patient_id, clinic_id))


@users_router.delete("/patient/{patient_id}/clinic", response_model=UserOut)
def remove_patient_from_clinic(
    patient_id: int,
    actor: Actor = Depends(allow_roles(UserType.ADMIN)),
    directory: UserDirectory = Depends(get_directory),
) -> UserOut:
    return _user_out(directory.remove_patient_from_clinic(patient_id))


@users_router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: int,
    user: User = Depends(get_current_user),
    directory: UserDirectory = Depends(get_directory),
) -> UserOut:
    return _user_out(directory.get_user(user_id))


@users_router.put("/{user_id}", response_model=UserOut)
def update_user(
    user_id: int,
    payload: UserUpdateIn,
    actor: Actor = Depends(get_actor),
    directory: UserDirectory = Depends(get_directory),
) -> UserOut:
    if actor.role != UserType.ADMIN:
        if actor.id != user_id:
            raise Forbidden("Puoi modificare solo il tuo profilo.")
        if {"user_type", "clinic_id"} & payload.model_fields_set:
            raise Forbidden("Ruolo e clinica sono modificabili solo da un admin.")
    return _user_out(directory.update_user(user_id, payload))


@users_router.delete("/{user_id}", response_model=UserOut)
def delete_user(
    user_id: int,
    actor: Actor = Depends(allow_roles(UserType.ADMIN)),
    directory: UserDirectory = Depends(get_directory),
) -> UserOut:
    return _user_out(directory.delete_user(user_id))



# VISITS endpoints

visits_router = APIRouter(prefix="/visits", tags=["visits"])


@visits_router.post("", response_model=VisitOut, status_code=status.HTTP_201_CREATED)
def create_visit(
    payload: VisitCreateIn,
    actor: Actor = Depends(allow_roles(*ALL_ROLES)),
    visits: VisitLifecycleManager = Depends(get_visits),
) -> VisitOut:
    return _visit_out(visits.create(payload, actor))


@visits_router.get("", response_model=list[VisitOut])
def list_visits(
    actor: Actor = Depends(allow_roles(UserType.ADMIN)),
    visits: VisitLifecycleManager = Depends(get_visits),
) -> list[VisitOut]:
    return [_visit_out(v) for v in visits.list_all()]


@visits_router.get("/occupied", response_model=list[VisitOut])
def occupied_slots(
    clinic_id: int = Query(...),
    date_from: datetime = Query(...),
    date_to: datetime = Query(...),
    actor: Actor = Depends(get_actor),
    visits: VisitLifecycleManager = Depends(get_visits),
) -> list[VisitOut]:
    return [_visit_out(v) for v in visits.occupied_slots(clinic_id, date_from, date_to)]


@visits_router.get("/clinic/{clinic_id}", response_model=list[VisitOut])
def clinic_visits(
    clinic_id: int,
    actor: Actor = Depends(allow_roles(UserType.CLINIC, UserType.ADMIN)),
    visits: VisitLifecycleManager = Depends(get_visits),
) -> list[VisitOut]:
    return [_visit_out(v) for v in visits.list_for_clinic(clinic_id, actor)]


@visits_router.get("/patient/{patient_id}", response_model=list[VisitOut])
def patient_visits(
    patient_id: int,
    actor: Actor = Depends(allow_roles(*ALL_ROLES)),
    visits: VisitLifecycleManager = Depends(get_visits),
) -> list[VisitOut]:
    return [_visit_out(v) for v in visits.list_for_patient(patient_id, actor)]


@visits_router.get("/{visit_id}", response_model=VisitOut)
def get_visit(
    visit_id: int,
    actor: Actor = Depends(get_actor),
    visits: VisitLifecycleManager = Depends(get_visits),
) -> VisitOut:
    return _visit_out(visits.get(visit_id))


@visits_router.put("/{visit_id}", response_model=VisitOut)
def update_visit(
    visit_id: int,
    payload: VisitUpdateIn,
    actor: Actor = Depends(allow_roles(*ALL_ROLES)),
    visits: VisitLifecycleManager = Depends(get_visits),
) -> VisitOut:
    return _visit_out(visits.update(visit_id, payload, actor))


@visits_router.put("/{visit_id}/status", response_model=VisitOut)
def update_visit_status(
    visit_id: int,
    payload: VisitStatusIn,
    actor: Actor = Depends(allow_roles(UserType.CLINIC, UserType.ADMIN)),
    visits: VisitLifecycleManager = Depends(get_visits),
) -> VisitOut:
    return _visit_out(visits.update_status(visit_id, payload.status, actor))


@visits_router.delete("/{visit_id}", response_model=VisitOut)
def delete_visit(
    visit_id: int,
    actor: Actor = Depends(allow_roles(*ALL_ROLES)),
    visits: VisitLifecycleManager = Depends(get_visits),
) -> VisitOut:
    return _visit_out(visits.delete(visit_id, actor))



# MAIL / HEALTH

misc_router = APIRouter()


@misc_router.post("/mail/test")
def mail_test(
    payload: MailTestIn,
    request: Request,
    actor: Actor = Depends(allow_roles(UserType.ADMIN)),
) -> dict[str, Any]:
    # qui l'errore di invio arriva al client (503)
    sender: MailSender = request.app.state.mail_sender
    sender.send(str(payload.to), "email", {"name": str(payload.to)}, "Prueba - DentalCare Pro")
    return {"ok": True}


@misc_router.get("/health")
def health() -> dict[str, Any]:
    return {"ok": True, "timestamp": datetime.now(timezone.utc).isoformat()}



# App

def create_app(
    session_factory: sessionmaker[Session] | None = None,
    mail_sender: MailSender | None = None,
    init_database: bool = True,
) -> FastAPI:
    app = FastAPI(title="DentalCare Agenda API", version="1.0.0")
    app.state.session_factory = session_factory or SessionLocal
    app.state.mail_sender = mail_sender or build_mail_sender()

    @app.exception_handler(DomainError)
    def _domain_error(request: Request, exc: DomainError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s su %s %s: %s", exc.kind, request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.on_event("startup")
    def startup() -> None:
        # Crea tabelle e, se richiesto, seed demo (idempotente)
        if not init_database:
            return
        init_db(app.state.session_factory.kw["bind"])
        if config.SEED_ON_STARTUP:
            seed_base(app.state.session_factory)

    app.include_router(users_router)
    app.include_router(visits_router)
    app.include_router(misc_router)
    return app


config.setup_logging()
app = create_app()
