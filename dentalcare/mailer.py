"""
Invio email.

Due implementazioni con la stessa firma ``send(to, template, context, subject)``:
- SmtpMailSender: invio reale via smtplib
- LogMailSender: nessun invio, solo log (sviluppo / EMAIL_HOST non configurato)

Gli errori di invio diventano sempre ``DeliveryUnavailable``.
"""
from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Any, Protocol

from . import config
from .errors import DeliveryUnavailable

logger = logging.getLogger(__name__)


class MailSender(Protocol):
    def send(self, to: str, template: str, context: dict[str, Any], subject: str = "") -> None:
        ...


def render_text(template: str, context: dict[str, Any]) -> str:
    """Corpo testuale minimale: i template HTML restano fuori da questo servizio."""
    lines = [f"[{template}]", ""]
    for key, value in context.items():
        if value is None:
            continue
        lines.append(f"{key}: {value}")
    return "\n".join(lines) + "\n"


class SmtpMailSender:
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        from_address: str = config.EMAIL_FROM,
        use_tls: bool = True,
        timeout: int = config.EMAIL_TIMEOUT,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address
        self.use_tls = use_tls
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        if self.port == 465:
            context = ssl.create_default_context()
            return smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout)

        server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        if self.use_tls:
            server.starttls(context=ssl.create_default_context())
        return server

    def send(self, to: str, template: str, context: dict[str, Any], subject: str = "") -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.from_address
        msg["To"] = to
        msg.set_content(render_text(template, context))

        try:
            with self._connect() as server:
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                "Invio email fallito: to=%s template=%s subject=%r host=%s:%s error=%s",
                to, template, subject, self.host, self.port, e,
            )
            raise DeliveryUnavailable("Impossibile inviare l'email.") from e

        logger.info("Email inviata: to=%s template=%s", to, template)


class LogMailSender:
    def send(self, to: str, template: str, context: dict[str, Any], subject: str = "") -> None:
        logger.info("Email (solo log): to=%s template=%s subject=%r", to, template, subject)
        logger.debug("Contenuto email:\n%s", render_text(template, context))


def build_mail_sender() -> MailSender:
    if not config.EMAIL_HOST:
        return LogMailSender()
    return SmtpMailSender(
        host=config.EMAIL_HOST,
        port=config.EMAIL_PORT,
        username=config.EMAIL_USER,
        password=config.EMAIL_PASSWORD,
        from_address=config.EMAIL_FROM,
    )
