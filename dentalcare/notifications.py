"""
Notifiche email sulle visite.

Per ogni evento (programmata, aggiornata, cancellata) partono due email,
una al paziente e una alla clinica, con lo stesso contesto. Gli errori di
invio vengono loggati e mai propagati: la mutazione della visita è già
stata confermata quando si arriva qui.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from zoneinfo import ZoneInfo

from . import config
from .mailer import MailSender
from .models import VisitType
from .views import VisitView

logger = logging.getLogger(__name__)

BRAND = "DentalCare Pro"

DIAS = ["Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado", "Domingo"]
MESES = [
    "Enero", "Febrero", "Marzo", "Abril", "Mayo", "Junio",
    "Julio", "Agosto", "Septiembre", "Octubre", "Noviembre", "Diciembre",
]


class VisitEvent(enum.Enum):
    SCHEDULED = "scheduled"
    UPDATED = "updated"
    CANCELED = "canceled"


# evento -> (oggetto email paziente, oggetto email clinica)
SUBJECTS: dict[VisitEvent, tuple[str, str]] = {
    VisitEvent.SCHEDULED: (f"Cita Programada - {BRAND}", "Nueva Cita Programada - {patient_name}"),
    VisitEvent.UPDATED: (f"Cita Actualizada - {BRAND}", "Cita Actualizada - {patient_name}"),
    VisitEvent.CANCELED: (f"Cita Cancelada - {BRAND}", "Cita Cancelada - {patient_name}"),
}


@dataclass(frozen=True)
class Delivery:
    to: str
    template: str
    context: dict[str, Any]
    subject: str


def _hour12(dt: datetime) -> str:
    suffix = "PM" if dt.hour >= 12 else "AM"
    return f"{dt.hour % 12 or 12}:{dt.minute:02d} {suffix}"


def format_visit_datetime(start: datetime, end: datetime, tz: str = config.DISPLAY_TIMEZONE) -> str:
    """Es: 'Viernes, 10 de Enero de 2025, 9:00 AM - 10:00 AM'."""
    zone = ZoneInfo(tz)
    start = start.astimezone(zone)
    end = end.astimezone(zone)
    day = DIAS[start.weekday()]
    month = MESES[start.month - 1]
    return f"{day}, {start.day} de {month} de {start.year}, {_hour12(start)} - {_hour12(end)}"


def format_visit_type(visit_type: VisitType) -> str:
    return visit_type.value[:1] + visit_type.value[1:].lower()


def build_context(visit: VisitView, tz: str = config.DISPLAY_TIMEZONE) -> dict[str, Any]:
    return {
        "patientName": visit.patient.name,
        "clinicName": visit.clinic.name,
        "patientEmail": visit.patient.email,
        "clinicEmail": visit.clinic.email,
        "visitTitle": visit.title,
        "visitType": format_visit_type(visit.type),
        "formattedDateTime": format_visit_datetime(visit.start_time, visit.end_time, tz),
        "notes": visit.notes or None,
        "visitId": visit.id,
    }


def build_deliveries(event: VisitEvent, visit: VisitView, tz: str = config.DISPLAY_TIMEZONE) -> list[Delivery]:
    context = build_context(visit, tz)
    patient_subject, clinic_subject = SUBJECTS[event]
    return [
        Delivery(
            to=visit.patient.email,
            template=f"visit-{event.value}-patient",
            context=dict(context),
            subject=patient_subject,
        ),
        Delivery(
            to=visit.clinic.email,
            template=f"visit-{event.value}-clinic",
            context=dict(context),
            subject=clinic_subject.format(patient_name=visit.patient.name),
        ),
    ]


class VisitNotifier:
    """
    sender: chi invia davvero (SMTP o log).
    defer: se presente, riceve (funzione, argomenti) e decide quando eseguire
    l'invio (es. BackgroundTasks.add_task di FastAPI). Senza defer l'invio è
    sincrono ma comunque non propaga errori.
    """

    def __init__(
        self,
        sender: MailSender,
        defer: Callable[..., Any] | None = None,
        tz: str = config.DISPLAY_TIMEZONE,
    ) -> None:
        self.sender = sender
        self.defer = defer
        self.tz = tz

    def notify(self, event: VisitEvent, visit: VisitView) -> None:
        try:
            deliveries = build_deliveries(event, visit, self.tz)
        except Exception:
            logger.exception("Preparazione email '%s' fallita per la visita %s", event.value, visit.id)
            return

        if self.defer is not None:
            self.defer(self.deliver, deliveries)
        else:
            self.deliver(deliveries)

    def deliver(self, deliveries: list[Delivery]) -> None:
        for d in deliveries:
            try:
                self.sender.send(d.to, d.template, d.context, d.subject)
            except Exception:
                logger.exception("Errore invio email %s a %s", d.template, d.to)
