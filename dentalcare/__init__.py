"""
Backend applicativo DentalCare Agenda.

Struttura:
- config.py        : configurazione da variabili d'ambiente (.env)
- db.py            : engine e sessioni SQLAlchemy
- models.py        : modelli ORM e enum (utenti, visite)
- errors.py        : gerarchia delle eccezioni di dominio
- store.py         : accesso ai dati (utenti, visite) per unità di lavoro
- conflicts.py     : rilevamento sovrapposizioni tra visite
- policies.py      : attori e restrizioni per ruolo
- notifications.py : payload e invio notifiche email sulle visite
- mailer.py        : invio email (SMTP o log)
- visits.py        : ciclo di vita delle visite
- users.py         : anagrafica utenti, login, assegnazione clinica
- api_main.py      : API FastAPI
- seed.py          : dati iniziali (admin, clinica, pazienti, visite)
- cli.py           : operazioni da riga di comando
"""
