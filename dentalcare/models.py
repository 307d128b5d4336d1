from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base
from .time_utils import utcnow


class UserType(enum.Enum):
    ADMIN = "ADMIN"
    CLINIC = "CLINIC"
    PATIENT = "PATIENT"


class VisitType(enum.Enum):
    CONSULTA = "CONSULTA"
    LIMPIEZA = "LIMPIEZA"
    EMPASTE = "EMPASTE"
    EXTRACCION = "EXTRACCION"
    ENDODONCIA = "ENDODONCIA"
    ORTODONCIA = "ORTODONCIA"
    URGENCIA = "URGENCIA"


class VisitStatus(enum.Enum):
    PROGRAMADA = "PROGRAMADA"
    CONFIRMADA = "CONFIRMADA"
    COMPLETADA = "COMPLETADA"
    CANCELADA = "CANCELADA"
    NO_ASISTIO = "NO_ASISTIO"


class User(Base):
    """
    Utente applicativo: admin, clinica o paziente.
    - email univoca (salvata in minuscolo)
    - password_hash con bcrypt (passlib)
    - clinic_id valorizzato solo per i pazienti
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    user_type: Mapped[UserType] = mapped_column(Enum(UserType), nullable=False)
    clinic_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    must_change_password: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    clinic: Mapped[Optional["User"]] = relationship(back_populates="patients", remote_side="User.id")
    # alla cancellazione della clinica i pazienti restano, senza clinica
    patients: Mapped[list["User"]] = relationship(back_populates="clinic")

    patient_visits: Mapped[list["Visit"]] = relationship(
        back_populates="patient", foreign_keys="Visit.patient_id", cascade="all, delete"
    )
    clinic_visits: Mapped[list["Visit"]] = relationship(
        back_populates="clinic", foreign_keys="Visit.clinic_id", cascade="all, delete"
    )

    def __repr__(self) -> str:
        return f"User({self.id}, {self.email}, {self.user_type.value})"


class Visit(Base):
    __tablename__ = "visits"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_visit_interval"),
        Index("ix_visits_clinic_start", "clinic_id", "start_time"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)

    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    type: Mapped[VisitType] = mapped_column(Enum(VisitType), nullable=False)
    status: Mapped[VisitStatus] = mapped_column(
        Enum(VisitStatus), default=VisitStatus.PROGRAMADA, nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    patient_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    clinic_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    patient: Mapped["User"] = relationship(back_populates="patient_visits", foreign_keys=[patient_id])
    clinic: Mapped["User"] = relationship(back_populates="clinic_visits", foreign_keys=[clinic_id])

    def __repr__(self) -> str:
        return f"Visit({self.id}, clinic={self.clinic_id}, {self.start_time:%Y-%m-%d %H:%M})"
