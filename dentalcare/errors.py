"""
Eccezioni di dominio.

Ogni errore porta un ``kind`` stabile (restituito al client insieme al
messaggio) e lo status HTTP corrispondente, usato dall'handler in api_main.
"""
from __future__ import annotations


class DomainError(Exception):
    kind = "DomainError"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class NotFound(DomainError):
    kind = "NotFound"
    status_code = 404


class InvalidRelationship(DomainError):
    kind = "InvalidRelationship"
    status_code = 400


class SchedulingConflict(DomainError):
    kind = "SchedulingConflict"
    status_code = 409


class PreconditionError(DomainError):
    kind = "PreconditionError"
    status_code = 400


class DuplicateEmail(DomainError):
    kind = "DuplicateEmail"
    status_code = 409


class ValidationFailed(DomainError):
    kind = "ValidationFailed"
    status_code = 400


class InvalidCredentials(DomainError):
    kind = "InvalidCredentials"
    status_code = 401


class Forbidden(DomainError):
    kind = "Forbidden"
    status_code = 403


class DeliveryUnavailable(DomainError):
    kind = "DeliveryUnavailable"
    status_code = 503
