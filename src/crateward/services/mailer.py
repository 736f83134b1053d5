"""Outgoing email — the confirmation link sent for a new address.

Two backends behind one interface:
- LogMailer: development; the link is written to the log instead of sent
- MailgunMailer: production; POSTs to the Mailgun messages API

Mailers raise on any delivery failure. Callers decide what a failure
means (the identity upsert treats it as fatal).
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx
import structlog

from crateward.config import settings

logger = structlog.get_logger()

CONFIRM_SUBJECT = "Please confirm your email address"


class MailError(Exception):
    """Raised when a message could not be handed to the mail backend."""


def confirm_url(token: str) -> str:
    return f"https://{settings.site_domain}/confirm/{token}"


def confirm_body(user_name: str, token: str) -> str:
    return (
        f"Hello {user_name}! Welcome to {settings.site_domain}. "
        "Please click the link below to verify your email address. "
        f"Thank you!\n\n{confirm_url(token)}"
    )


class Mailer(ABC):
    """Abstract base for mail backends."""

    @abstractmethod
    async def send(self, recipient: str, subject: str, body: str) -> None:
        """Deliver one plain-text message. Raises MailError on failure."""

    async def send_user_confirm_email(
        self, email: str, user_name: str, token: str
    ) -> None:
        await self.send(email, CONFIRM_SUBJECT, confirm_body(user_name, token))


class LogMailer(Mailer):
    """Writes messages to the log. Never fails."""

    async def send(self, recipient: str, subject: str, body: str) -> None:
        logger.info("mail.logged", recipient=recipient, subject=subject, body=body)


class MailgunMailer(Mailer):
    """Sends through the Mailgun HTTP API."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        domain: str,
        sender: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.domain = domain
        self.sender = sender
        self.transport = transport
        self.timeout = timeout

    async def send(self, recipient: str, subject: str, body: str) -> None:
        url = f"{self.api_url}/{self.domain}/messages"
        data = {
            "from": self.sender,
            "to": recipient,
            "subject": subject,
            "text": body,
        }
        try:
            async with httpx.AsyncClient(
                transport=self.transport, timeout=self.timeout
            ) as client:
                resp = await client.post(url, data=data, auth=("api", self.api_key))
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("mail.send_failed", recipient=recipient, error=str(e))
            raise MailError(f"mailgun delivery failed: {e}") from e


def get_mailer() -> Mailer:
    """FastAPI dependency — the configured mail backend."""
    if settings.mail_backend == "mailgun":
        return MailgunMailer(
            api_url=settings.mailgun_api_url,
            api_key=settings.mailgun_api_key,
            domain=settings.mailgun_domain,
            sender=settings.mail_from,
        )
    return LogMailer()
