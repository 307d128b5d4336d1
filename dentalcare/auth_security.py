"""
Credenziali di DentalCare: hash bcrypt delle password e token di accesso JWT.

Il token porta l'id dell'utente in ``sub``; email e ruolo viaggiano come
claim aggiuntivi ma l'API ricarica sempre l'utente dal database.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import BCRYPT_ROUNDS, JWT_ALG, JWT_EXPIRE_MINUTES, JWT_SECRET

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # hash in un formato che passlib non riconosce
        return False


def create_access_token(subject: str, extra: dict[str, Any] | None = None) -> str:
    """Token firmato per l'utente ``subject`` (id come stringa), valido JWT_EXPIRE_MINUTES."""
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=JWT_EXPIRE_MINUTES)

    payload: dict[str, Any] = {
        "sub": subject,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    if extra:
        payload.update(extra)

    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])


def get_subject(token: str) -> str | None:
    """Id utente dal token, None se firma o scadenza non sono valide."""
    try:
        payload = decode_token(token)
        return payload.get("sub")
    except JWTError:
        return None
