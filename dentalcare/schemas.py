from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from .models import UserType, VisitStatus, VisitType
from .time_utils import to_db


def _strip_required(v: str | None, label: str) -> str | None:
    # None = campo non inviato (solo negli update)
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError(f"{label} è obbligatorio.")
    return v


# Schemi Utenti

class UserCreateIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    # obbligatoria per admin e cliniche; per i pazienti viene generata se assente
    password: str | None = Field(default=None, min_length=6)
    user_type: UserType
    clinic_id: int | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        return _strip_required(v, "Il nome")

    @model_validator(mode="after")
    def _password_required(self) -> "UserCreateIn":
        if self.user_type != UserType.PATIENT and not self.password:
            raise ValueError("La password è obbligatoria per admin e cliniche.")
        return self


class UserUpdateIn(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=6)
    user_type: UserType | None = None
    clinic_id: int | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str | None) -> str | None:
        return _strip_required(v, "Il nome")


class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    user_type: UserType
    clinic_id: int | None = None
    must_change_password: bool = False
    created_at: datetime
    updated_at: datetime


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


# Schemi Visite

class VisitCreateIn(BaseModel):
    title: str = Field(..., min_length=1)
    start_time: datetime
    end_time: datetime
    type: VisitType
    status: VisitStatus | None = None
    notes: str | None = None
    # per pazienti e cliniche vengono sovrascritti dalle policy
    patient_id: int | None = None
    clinic_id: int | None = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str) -> str:
        return _strip_required(v, "Il titolo")

    @model_validator(mode="after")
    def _check_interval(self) -> "VisitCreateIn":
        if to_db(self.start_time) >= to_db(self.end_time):
            raise ValueError("start_time deve precedere end_time.")
        return self


class VisitUpdateIn(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    start_time: datetime | None = None
    end_time: datetime | None = None
    type: VisitType | None = None
    status: VisitStatus | None = None
    notes: str | None = None
    patient_id: int | None = None
    clinic_id: int | None = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str | None) -> str | None:
        return _strip_required(v, "Il titolo")

    def changes(self) -> dict:
        """Solo i campi effettivamente inviati dal client."""
        return self.model_dump(exclude_unset=True)


class VisitStatusIn(BaseModel):
    status: VisitStatus


class PartyOut(BaseModel):
    id: int
    name: str
    email: str


class VisitOut(BaseModel):
    id: int
    title: str
    start_time: datetime
    end_time: datetime
    type: VisitType
    status: VisitStatus
    notes: str | None = None
    patient_id: int
    clinic_id: int
    created_at: datetime
    updated_at: datetime
    patient: PartyOut
    clinic: PartyOut


class MailTestIn(BaseModel):
    to: EmailStr
