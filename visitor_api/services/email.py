"""Outgoing mail for magic links and confirmation reminders.

``EMAIL_BACKEND`` picks the transport. ``auto`` uses SES in production or
when static AWS keys are configured and the in-memory console client
otherwise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..config import settings
from .aws import boto3_client, has_static_credentials

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    pass


@dataclass
class EmailMessage:
    to: str
    subject: str
    text_body: str
    html_body: Optional[str] = None
    category: str = "notification"


class EmailClient:
    def send(self, message: EmailMessage) -> Optional[str]:  # pragma: no cover - interface
        """Deliver ``message`` and return the provider message id when there is one."""
        raise NotImplementedError


class SesEmailClient(EmailClient):
    def __init__(self, client: Any | None = None) -> None:
        self._client = client or boto3_client("ses")

    def build_request(self, message: EmailMessage) -> dict[str, Any]:
        body: dict[str, dict[str, str]] = {"Text": {"Data": message.text_body, "Charset": "UTF-8"}}
        if message.html_body:
            body["Html"] = {"Data": message.html_body, "Charset": "UTF-8"}
        request: dict[str, Any] = {
            "Source": settings.email_from,
            "Destination": {"ToAddresses": [message.to]},
            "Message": {"Subject": {"Data": message.subject, "Charset": "UTF-8"}, "Body": body},
            "Tags": [{"Name": "category", "Value": message.category}],
        }
        if settings.email_reply_to:
            request["ReplyToAddresses"] = [settings.email_reply_to]
        if settings.ses_configuration_set:
            request["ConfigurationSetName"] = settings.ses_configuration_set
        return request

    def send(self, message: EmailMessage) -> Optional[str]:
        try:
            response = self._client.send_email(**self.build_request(message))
        except (BotoCoreError, ClientError) as exc:
            logger.error("email_send_failed to=%s category=%s error=%s", message.to, message.category, exc)
            raise EmailDeliveryError(f"Could not deliver email to {message.to}") from exc

        message_id = response.get("MessageId")
        logger.info("email_sent to=%s category=%s message_id=%s", message.to, message.category, message_id)
        return message_id


class ConsoleEmailClient(EmailClient):
    """Keeps every message in ``outbox`` and logs it instead of sending."""

    def __init__(self) -> None:
        self.outbox: list[EmailMessage] = []

    def send(self, message: EmailMessage) -> Optional[str]:
        self.outbox.append(message)
        logger.info("email_captured to=%s category=%s subject=%r", message.to, message.category, message.subject)
        logger.debug("email_body to=%s\n%s", message.to, message.text_body)
        return None


def get_email_client() -> EmailClient:
    backend = settings.email_backend
    if backend == "auto":
        backend = "ses" if settings.environment == "production" or has_static_credentials() else "console"
    if backend == "ses":
        return SesEmailClient()
    return ConsoleEmailClient()
