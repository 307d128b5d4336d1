from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# .env nella root del progetto (accanto a pyproject.toml)
ROOT_DIR = Path(__file__).resolve().parents[1]
load_dotenv(dotenv_path=ROOT_DIR / ".env")

DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{ROOT_DIR / 'dentalcare.sqlite'}")
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "0") == "1"

# In produzione: mettila in variabile d'ambiente
JWT_SECRET = os.getenv("JWT_SECRET", "CHANGE_ME_DEV_SECRET")
JWT_ALG = "HS256"
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# SMTP: se EMAIL_HOST è vuoto le email vengono solo loggate
EMAIL_HOST = os.getenv("EMAIL_HOST", "")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_USER = os.getenv("EMAIL_USER", "")
EMAIL_PASSWORD = os.getenv("EMAIL_PASSWORD", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "DentalCare Pro <no-reply@dentalcare.local>")
EMAIL_TIMEOUT = int(os.getenv("EMAIL_TIMEOUT", "30"))

# Fuso orario usato per date/ore nelle email
DISPLAY_TIMEZONE = os.getenv("DISPLAY_TIMEZONE", "UTC")

SEED_ON_STARTUP = os.getenv("SEED_ON_STARTUP", "0") == "1"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def setup_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=getattr(logging, level or LOG_LEVEL, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
