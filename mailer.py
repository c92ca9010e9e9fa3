"""
SMTP delivery for the readiness report.

Configuration comes from settings (SMTP_HOST, SMTP_PORT, SMTP_USERNAME,
SMTP_PASSWORD, SMTP_USE_TLS, FROM_EMAIL). Without a host or sender the mailer
reports NOT_CONFIGURED and never opens a connection.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from enum import Enum
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    NOT_CONFIGURED = "not_configured"


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    mimetype: str = "application/pdf"


@dataclass(frozen=True)
class DeliveryOutcome:
    status: DeliveryStatus
    reason: Optional[str] = None

    @property
    def sent(self) -> bool:
        return self.status is DeliveryStatus.SENT

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"status": self.status.value, "reason": self.reason}

    @classmethod
    def from_dict(cls, data: Mapping[str, Optional[str]]) -> "DeliveryOutcome":
        return cls(status=DeliveryStatus(data.get("status")), reason=data.get("reason"))


class SMTPMailer:
    def __init__(
        self,
        host: Optional[str] = None,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        from_email: Optional[str] = None,
        timeout: float = 15.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_email = from_email
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.host and self.from_email)

    def build_message(
        self, to_address: str, subject: str, body: str, attachment: Optional[Attachment]
    ) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.from_email or ""
        message["To"] = to_address
        message["Subject"] = subject
        message.set_content(body)
        if attachment is not None:
            maintype, _, subtype = attachment.mimetype.partition("/")
            message.add_attachment(
                attachment.content,
                maintype=maintype,
                subtype=subtype or "octet-stream",
                filename=attachment.filename,
            )
        return message

    def send(
        self,
        to_address: str,
        subject: str,
        body: str,
        attachment: Optional[Attachment] = None,
    ) -> DeliveryOutcome:
        if not self.is_configured():
            logger.warning("SMTP not configured; skipping email to %s", to_address)
            return DeliveryOutcome(DeliveryStatus.NOT_CONFIGURED, "SMTP not configured")
        if not to_address:
            return DeliveryOutcome(DeliveryStatus.FAILED, "No recipient address")

        message = self.build_message(to_address, subject, body, attachment)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(message)
        except smtplib.SMTPAuthenticationError as exc:
            logger.error("SMTP auth error: %s", exc)
            return DeliveryOutcome(DeliveryStatus.FAILED, f"SMTP authentication failed: {exc}")
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP send to %s failed: %s", to_address, exc)
            return DeliveryOutcome(DeliveryStatus.FAILED, str(exc))

        logger.info("Report emailed to %s", to_address)
        return DeliveryOutcome(DeliveryStatus.SENT)
