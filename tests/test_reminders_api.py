from __future__ import annotations

from datetime import date, timedelta

import pytest

from conftest import invite, make_document, make_event, make_visitor
from visitor_api.db.session import SessionLocal
from visitor_api.services import reminders
from visitor_api.services.reminders import ReminderDispatchError, ReminderDispatcher


class FailingDispatcher(ReminderDispatcher):
    def send(self, recipients) -> None:
        raise ReminderDispatchError("no route to mail server")


def _seed_outstanding() -> None:
    with SessionLocal() as session:
        soon = make_event(session, name="Soon", start=date.today() + timedelta(days=2))
        later = make_event(session, name="Later", start=date.today() + timedelta(days=60))
        make_document(session, "NDA", events=[soon, later])
        visitor = make_visitor(session, first_name="Pat", email="pat@example.com")
        invite(session, visitor, soon)
        invite(session, visitor, later)
        session.commit()


@pytest.mark.integration
def test_outstanding_respects_window(client, admin_context):
    _seed_outstanding()

    everything = client.get("/reminders/outstanding").json()["items"]
    assert {item["event_name"] for item in everything} == {"Soon", "Later"}

    response = client.get("/reminders/outstanding", params={"window_days": 7})
    assert response.status_code == 200
    items = response.json()["items"]
    assert [item["event_name"] for item in items] == ["Soon"]
    assert items[0]["email"] == "pat@example.com"
    assert len(items[0]["missing_document_ids"]) == 1


@pytest.mark.integration
def test_send_reminders_returns_stats(client, admin_context):
    _seed_outstanding()

    response = client.post("/reminders/send")

    assert response.status_code == 200
    assert response.json() == {"status": "sent", "outstanding": 2, "sent": 1}


@pytest.mark.integration
def test_send_reminders_failure_returns_502(client, admin_context, monkeypatch):
    _seed_outstanding()
    monkeypatch.setattr(reminders, "get_reminder_dispatcher", lambda: FailingDispatcher())

    response = client.post("/reminders/send")

    assert response.status_code == 502
    assert response.json()["detail"] == "Failed to send reminders"
