from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType
from fastapi_mail.schemas import MultipartSubtypeEnum

from bk_billing.core.config import Settings, get_settings
from bk_billing.domain.errors import NotificationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str
    attachments: tuple[Path, ...] = field(default_factory=tuple)


class EmailTransport:
    def send(self, message: EmailMessage) -> str:  # pragma: no cover - interface
        raise NotImplementedError


class LoggingEmailTransport(EmailTransport):
    """Development backend: logs the message instead of sending it."""

    def send(self, message: EmailMessage) -> str:
        message_id = f"log-{uuid.uuid4()}"
        logger.info(
            "email not sent (log backend): id=%s to=%s subject=%r attachments=%d",
            message_id,
            message.to,
            message.subject,
            len(message.attachments),
        )
        return message_id


class FastMailTransport(EmailTransport):
    def __init__(self, config: ConnectionConfig):
        self.mail = FastMail(config)

    def send(self, message: EmailMessage) -> str:
        schema = MessageSchema(
            subject=message.subject,
            recipients=[message.to],
            body=message.html,
            alternative_body=message.text,
            subtype=MessageType.html,
            multipart_subtype=MultipartSubtypeEnum.alternative,
            attachments=[str(path) for path in message.attachments],
        )
        try:
            # Routes are sync and run in the threadpool, so no loop is running here.
            asyncio.run(self.mail.send_message(schema))
        except Exception as exc:
            raise NotificationError(f"SMTP delivery failed: {exc}") from exc
        return f"smtp-{uuid.uuid4()}"


def mail_config_from_settings(settings: Settings) -> ConnectionConfig:
    return ConnectionConfig(
        MAIL_USERNAME=settings.mail_username,
        MAIL_PASSWORD=settings.mail_password,
        MAIL_FROM=settings.mail_from,
        MAIL_PORT=settings.mail_port,
        MAIL_SERVER=settings.mail_server,
        MAIL_FROM_NAME=settings.mail_from_name,
        MAIL_STARTTLS=settings.mail_starttls,
        MAIL_SSL_TLS=settings.mail_ssl_tls,
        USE_CREDENTIALS=settings.mail_use_credentials,
        VALIDATE_CERTS=settings.mail_validate_certs,
        SUPPRESS_SEND=1 if settings.mail_suppress_send else 0,
    )


def build_email_transport() -> EmailTransport:
    settings = get_settings()
    if settings.email_backend == "smtp":
        try:
            return FastMailTransport(mail_config_from_settings(settings))
        except ValueError:
            logger.exception("invalid SMTP configuration, falling back to log email backend")
    return LoggingEmailTransport()
