from __future__ import annotations

import argparse
import sys
from datetime import datetime

from .config import setup_logging
from .db import init_db
from .errors import DomainError
from .models import UserType, VisitStatus, VisitType
from .policies import AdminActor
from .schemas import UserCreateIn, VisitCreateIn
from .seed import seed_base
from .users import UserDirectory
from .visits import VisitLifecycleManager

# la CLI agisce come amministratore: nessuna restrizione per ruolo
CLI_ACTOR = AdminActor(id=0)


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    if args.seed:
        seed_base()
    print("DB inizializzato" + (" e seed completato." if args.seed else "."))


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "users":
        for u in UserDirectory().list_users():
            clinic = f" | clinica {u.clinic_id}" if u.clinic_id else ""
            print(f"{u.id} | {u.user_type.value} | {u.name} | {u.email}{clinic}")
    elif args.entity == "visits":
        manager = VisitLifecycleManager()
        views = manager.list_for_clinic(args.clinic_id) if args.clinic_id else manager.list_all()
        for v in views:
            print(
                f"{v.id} | {v.start_time:%Y-%m-%d %H:%M}-{v.end_time:%H:%M} | {v.status.value} | "
                f"{v.type.value} | {v.patient.name} @ {v.clinic.name}"
            )


def cmd_add_user(args: argparse.Namespace) -> None:
    u = UserDirectory().create_user(
        UserCreateIn(
            name=args.name,
            email=args.email,
            password=args.password,
            user_type=UserType(args.type),
            clinic_id=args.clinic_id,
        )
    )
    print(f"Utente creato: {u.id}")


def cmd_book(args: argparse.Namespace) -> None:
    dto = VisitCreateIn(
        title=args.title,
        start_time=datetime.fromisoformat(args.start),  # formato: 2026-01-14T10:30
        end_time=datetime.fromisoformat(args.end),
        type=VisitType(args.type),
        notes=args.notes,
        patient_id=args.patient_id,
        clinic_id=args.clinic_id,
    )
    v = VisitLifecycleManager().create(dto, CLI_ACTOR)
    print(f"Visita programmata: {v.id} ({v.start_time:%d/%m/%Y %H:%M})")


def cmd_status(args: argparse.Namespace) -> None:
    v = VisitLifecycleManager().update_status(args.visit_id, VisitStatus(args.status))
    print(f"Visita {v.id}: {v.status.value}")


def cmd_cancel(args: argparse.Namespace) -> None:
    v = VisitLifecycleManager().delete(args.visit_id, CLI_ACTOR)
    print(f"Visita {v.id} cancellata.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="dentalcare", description="CLI DentalCare Agenda")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Crea DB (e opzionalmente carica il seed demo)")
    p_init.add_argument("--seed", action="store_true")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("list", help="Lista entità")
    p_list.add_argument("entity", choices=["users", "visits"])
    p_list.add_argument("--clinic-id", type=int, default=None, help="Solo visite di questa clinica")
    p_list.set_defaults(func=cmd_list)

    p_addu = sub.add_parser("add-user", help="Crea utente")
    p_addu.add_argument("--name", required=True)
    p_addu.add_argument("--email", required=True)
    p_addu.add_argument("--password", default=None)
    p_addu.add_argument("--type", choices=[t.value for t in UserType], required=True)
    p_addu.add_argument("--clinic-id", type=int, default=None)
    p_addu.set_defaults(func=cmd_add_user)

    p_book = sub.add_parser("book", help="Programma una visita")
    p_book.add_argument("--title", required=True)
    p_book.add_argument("--patient-id", type=int, required=True)
    p_book.add_argument("--clinic-id", type=int, required=True)
    p_book.add_argument("--type", choices=[t.value for t in VisitType], required=True)
    p_book.add_argument("--start", required=True, help="ISO datetime es: 2026-01-14T10:30")
    p_book.add_argument("--end", required=True, help="ISO datetime es: 2026-01-14T11:00")
    p_book.add_argument("--notes", default=None)
    p_book.set_defaults(func=cmd_book)

    p_status = sub.add_parser("status", help="Cambia stato di una visita")
    p_status.add_argument("--visit-id", type=int, required=True)
    p_status.add_argument("--status", choices=[s.value for s in VisitStatus], required=True)
    p_status.set_defaults(func=cmd_status)

    p_cancel = sub.add_parser("cancel", help="Cancella una visita")
    p_cancel.add_argument("--visit-id", type=int, required=True)
    p_cancel.set_defaults(func=cmd_cancel)

    return p


def main(argv: list[str] | None = None) -> int:
    setup_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    init_db()  # garantisce tabelle
    try:
        args.func(args)
    except DomainError as e:
        print(f"{e.kind}: {e.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
