from __future__ import annotations

from prometheus_client import Counter


CONFIRMATIONS_RECORDED_COUNTER = Counter(
    "va_confirmations_recorded_total",
    "Document confirmations recorded by visitors",
)

CONFIRMATIONS_DUPLICATE_COUNTER = Counter(
    "va_confirmations_duplicate_total",
    "Repeat confirmations of an already confirmed current version",
)

RSVP_AUTO_CONFIRMED_COUNTER = Counter(
    "va_rsvp_auto_confirmed_total",
    "Event RSVPs moved to confirmed after all required documents were acknowledged",
)

STALE_CONFIRMATIONS_COUNTER = Counter(
    "va_stale_confirmations_observed_total",
    "Confirmations found pointing at a superseded document version on read",
)

DOCUMENT_VERSIONS_COUNTER = Counter(
    "va_document_versions_uploaded_total",
    "Document versions uploaded",
)

IMPORT_ROWS_COUNTER = Counter(
    "va_visitor_import_rows_total",
    "Visitor spreadsheet rows processed",
    ["outcome"],
)

REMINDERS_COUNTER = Counter(
    "va_confirmation_reminders_total",
    "Confirmation reminder recipients handed to the dispatcher",
    ["outcome"],
)


def record_confirmation(duplicate: bool = False) -> None:
    if duplicate:
        CONFIRMATIONS_DUPLICATE_COUNTER.inc()
    else:
        CONFIRMATIONS_RECORDED_COUNTER.inc()


def record_rsvp_auto_confirmed() -> None:
    RSVP_AUTO_CONFIRMED_COUNTER.inc()


def record_stale_confirmations(count: int) -> None:
    if count > 0:
        STALE_CONFIRMATIONS_COUNTER.inc(count)


def record_document_version_uploaded() -> None:
    DOCUMENT_VERSIONS_COUNTER.inc()


def record_import_rows(success: int, failed: int) -> None:
    if success:
        IMPORT_ROWS_COUNTER.labels(outcome="success").inc(success)
    if failed:
        IMPORT_ROWS_COUNTER.labels(outcome="failed").inc(failed)


def record_reminders(sent: int = 0, failed: int = 0) -> None:
    if sent:
        REMINDERS_COUNTER.labels(outcome="sent").inc(sent)
    if failed:
        REMINDERS_COUNTER.labels(outcome="failed").inc(failed)
