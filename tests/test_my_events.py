from __future__ import annotations

import uuid
from datetime import date, timedelta

import pytest

from conftest import current_version, invite, make_document, make_event
from visitor_api.db.session import SessionLocal
from visitor_api.models import DocumentVersion, EventVisitor, RsvpStatusEnum, Visitor
from visitor_api.services.documents import set_current_version


def _assign_event(visitor_id: str, *, versions: int = 1) -> dict[str, str]:
    with SessionLocal() as session:
        visitor = session.get(Visitor, uuid.UUID(visitor_id))
        event = make_event(session, name="Plant Tour", start=date.today() + timedelta(days=5), location="Building 4")
        nda = make_document(session, "NDA", events=[event], versions=versions)
        safety = make_document(session, "Safety Briefing", events=[event])
        invite(session, visitor, event)
        make_event(session, name="Not Invited")
        session.commit()
        return {
            "event_id": str(event.id),
            "nda_id": str(nda.id),
            "nda_version_id": str(current_version(session, nda).id),
            "safety_id": str(safety.id),
        }


def _version_id(document_id: str, number: int) -> uuid.UUID:
    with SessionLocal() as session:
        return (
            session.query(DocumentVersion.id)
            .filter(DocumentVersion.document_id == uuid.UUID(document_id), DocumentVersion.version_number == number)
            .scalar()
        )


@pytest.mark.integration
def test_list_my_events_includes_summary(client, visitor_context, mock_s3):
    ids = _assign_event(visitor_context["visitor_id"])

    response = client.get("/me/events")

    assert response.status_code == 200
    items = response.json()["items"]
    assert len(items) == 1
    assert items[0]["id"] == ids["event_id"]
    assert items[0]["location"] == "Building 4"
    assert items[0]["rsvp_status"] == "invited"
    assert items[0]["required_count"] == 2
    assert items[0]["confirmed_count"] == 0
    assert items[0]["fully_confirmed"] is False


@pytest.mark.integration
def test_event_documents_include_state_and_download_link(client, visitor_context, mock_s3):
    ids = _assign_event(visitor_context["visitor_id"])

    response = client.get(f"/me/events/{ids['event_id']}/documents")

    assert response.status_code == 200
    body = response.json()
    by_id = {doc["document_id"]: doc for doc in body["documents"]}
    assert set(by_id) == {ids["nda_id"], ids["safety_id"]}
    assert by_id[ids["nda_id"]]["state"] == "unconfirmed"
    assert by_id[ids["nda_id"]]["is_stale"] is False
    assert "test-visitor-documents" in by_id[ids["nda_id"]]["download_url"]


@pytest.mark.integration
def test_event_documents_hidden_for_unassigned_event(client, visitor_context, mock_s3):
    with SessionLocal() as session:
        event_id = str(make_event(session, name="Private").id)
        session.commit()

    response = client.get(f"/me/events/{event_id}/documents")

    assert response.status_code == 404
    assert response.json()["detail"] == "Event not found"


@pytest.mark.integration
def test_confirming_every_document_confirms_rsvp(client, visitor_context, mock_s3):
    ids = _assign_event(visitor_context["visitor_id"])
    base = f"/me/events/{ids['event_id']}/documents"

    first = client.post(f"{base}/{ids['nda_id']}/confirm", json={"version_id": ids["nda_version_id"]})
    assert first.status_code == 200
    assert first.json()["created"] is True
    assert first.json()["rsvp_changed"] is False
    assert first.json()["confirmed_count"] == 1

    repeat = client.post(f"{base}/{ids['nda_id']}/confirm")
    assert repeat.status_code == 200
    assert repeat.json()["created"] is False
    assert repeat.json()["confirmation_id"] == first.json()["confirmation_id"]

    last = client.post(f"{base}/{ids['safety_id']}/confirm")
    assert last.status_code == 200
    assert last.json()["rsvp_changed"] is True
    assert last.json()["fully_confirmed"] is True
    assert last.json()["rsvp_status"] == "confirmed"

    with SessionLocal() as session:
        assignment = (
            session.query(EventVisitor)
            .filter(EventVisitor.visitor_id == uuid.UUID(visitor_context["visitor_id"]))
            .one()
        )
        assert assignment.rsvp_status == RsvpStatusEnum.CONFIRMED


@pytest.mark.integration
def test_confirming_outdated_version_conflicts(client, visitor_context, mock_s3):
    ids = _assign_event(visitor_context["visitor_id"], versions=2)
    old_id = str(_version_id(ids["nda_id"], 1))

    response = client.post(
        f"/me/events/{ids['event_id']}/documents/{ids['nda_id']}/confirm",
        json={"version_id": old_id},
    )

    assert response.status_code == 409
    assert response.json()["detail"].startswith("A newer version of this document is available")


@pytest.mark.integration
def test_new_current_version_marks_confirmation_stale(client, visitor_context, mock_s3):
    ids = _assign_event(visitor_context["visitor_id"], versions=2)
    confirm = client.post(f"/me/events/{ids['event_id']}/documents/{ids['nda_id']}/confirm")
    assert confirm.status_code == 200

    first_version_id = _version_id(ids["nda_id"], 1)
    with SessionLocal() as session:
        set_current_version(session, uuid.UUID(ids["nda_id"]), first_version_id)
        session.commit()

    body = client.get(f"/me/events/{ids['event_id']}/documents").json()
    nda = next(doc for doc in body["documents"] if doc["document_id"] == ids["nda_id"])
    assert nda["state"] == "stale"
    assert nda["is_stale"] is True
    assert nda["confirmed_version_number"] == 2
    assert body["stale_count"] == 1
