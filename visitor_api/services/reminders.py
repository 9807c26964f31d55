from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy.orm import Session

from ..config import settings
from . import metrics
from .activity import log_activity
from .aws import invoke_function
from .confirmations import OutstandingConfirmation, find_outstanding_confirmations
from .email import EmailClient, EmailDeliveryError, EmailMessage, get_email_client


logger = logging.getLogger(__name__)


class ReminderDispatchError(Exception):
    pass


@dataclass(frozen=True)
class ReminderRecipient:
    email: str
    first_name: str
    last_name: str


class ReminderDispatcher:
    """Hands a batch of recipients to whatever actually sends the reminder."""

    def send(self, recipients: Sequence[ReminderRecipient]) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class LambdaReminderDispatcher(ReminderDispatcher):
    def __init__(self, function_name: str, client: Any | None = None) -> None:
        self.function_name = function_name
        self._client = client

    def send(self, recipients: Sequence[ReminderRecipient]) -> None:
        payload = {"recipients": [asdict(recipient) for recipient in recipients]}
        try:
            response = invoke_function(self.function_name, payload, client=self._client)
        except (BotoCoreError, ClientError) as exc:
            logger.error("Reminder function invoke failed: function=%s error=%s", self.function_name, exc)
            raise ReminderDispatchError("Failed to send reminders") from exc
        if response.get("error"):
            logger.error("Reminder function returned error: function=%s error=%s", self.function_name, response["error"])
            raise ReminderDispatchError(str(response["error"]))


class EmailReminderDispatcher(ReminderDispatcher):
    def __init__(self, email_client: EmailClient | None = None) -> None:
        self.email_client = email_client or get_email_client()

    def send(self, recipients: Sequence[ReminderRecipient]) -> None:
        app_url = settings.app_url.rstrip("/")
        failures = 0
        for recipient in recipients:
            message = EmailMessage(
                to=recipient.email,
                subject="Please review your event documents",
                text_body=(
                    f"Hi {recipient.first_name},\n\n"
                    "You have event documents waiting for your confirmation, or a document you "
                    "confirmed has been updated.\n\n"
                    f"Review them at {app_url}/profile."
                ),
                category="reminder",
            )
            try:
                self.email_client.send(message)
            except EmailDeliveryError:
                logger.exception("Reminder email failed: to=%s", recipient.email)
                failures += 1
        if failures:
            raise ReminderDispatchError(f"{failures} of {len(recipients)} reminder emails failed")


def get_reminder_dispatcher() -> ReminderDispatcher:
    if settings.reminder_function_name:
        return LambdaReminderDispatcher(settings.reminder_function_name)
    return EmailReminderDispatcher()


def collect_reminder_recipients(
    outstanding: Sequence[OutstandingConfirmation],
) -> list[ReminderRecipient]:
    """One recipient per email address; visitors without an email are skipped."""
    recipients: dict[str, ReminderRecipient] = {}
    for item in outstanding:
        email = (item.visitor.email or "").strip()
        if not email:
            continue
        key = email.lower()
        if key not in recipients:
            recipients[key] = ReminderRecipient(
                email=email,
                first_name=item.visitor.first_name,
                last_name=item.visitor.last_name,
            )
    return list(recipients.values())


def send_confirmation_reminders(
    db: Session,
    *,
    now: datetime | None = None,
    window_days: int | None = None,
    dispatcher: ReminderDispatcher | None = None,
) -> dict[str, int]:
    now = now or datetime.now(timezone.utc)
    window_days = window_days if window_days is not None else settings.reminder_window_days
    stats: dict[str, int] = defaultdict(int)

    outstanding = find_outstanding_confirmations(db, now=now, window_days=window_days)
    stats["outstanding"] = len(outstanding)
    recipients = collect_reminder_recipients(outstanding)
    if not recipients:
        return dict(stats)

    dispatcher = dispatcher or get_reminder_dispatcher()
    try:
        dispatcher.send(recipients)
    except ReminderDispatchError as exc:
        stats["failed"] = len(recipients)
        metrics.record_reminders(failed=len(recipients))
        log_activity(db, "reminders_failed", recipients=len(recipients), error=str(exc))
        logger.error("Confirmation reminders failed: recipients=%s error=%s", len(recipients), exc)
        raise

    stats["sent"] = len(recipients)
    metrics.record_reminders(sent=len(recipients))
    log_activity(
        db,
        "reminders_sent",
        recipients=len(recipients),
        events=sorted({str(item.event.id) for item in outstanding}),
        sent_at=now,
    )
    logger.info("confirmation_reminders_sent recipients=%s outstanding=%s", len(recipients), len(outstanding))
    return dict(stats)
