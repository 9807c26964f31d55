from __future__ import annotations

import io
import uuid
from datetime import date

import pytest
from openpyxl import Workbook

from conftest import invite, make_document, make_event, make_organization, make_visitor
from visitor_api.db.session import SessionLocal
from visitor_api.models import ActivityLog, Visitor
from visitor_api.services.confirmations import record_confirmation
from visitor_api.services.documents import set_current_version
from visitor_api.services.visitor_import import EXPECTED_HEADERS

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _workbook(rows) -> bytes:
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = "Visitors"
    worksheet.append(list(EXPECTED_HEADERS))
    for row in rows:
        worksheet.append(list(row))
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.mark.integration
def test_import_endpoint_reports_per_row_results(client, admin_context):
    with SessionLocal() as session:
        make_organization(session, "Acme Corp")
        make_event(session, name="Plant Tour", start=date(2031, 3, 5))
        session.commit()

    content = _workbook(
        [
            ("Ann", "Able", "ann@example.com", "206-555-0100", "Acme Corp", "Plant Tour (Mar 5, 2031)"),
            ("Ben", "Baker", "ben@example.com", "bad", "Acme Corp", "Plant Tour (Mar 5, 2031)"),
        ]
    )
    response = client.post("/visitors/import", files={"file": ("visitors.xlsx", io.BytesIO(content), XLSX)})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert body["success"] == 1
    assert body["errors"] == [
        {
            "row": 3,
            "first_name": "Ben",
            "last_name": "Baker",
            "reason": 'Invalid phone format "bad". Expected: 000-000-0000',
        }
    ]

    with SessionLocal() as session:
        assert [visitor.email for visitor in session.query(Visitor).all()] == ["ann@example.com"]
        entry = session.query(ActivityLog).filter(ActivityLog.type == "visitors_imported").one()
        assert str(entry.actor_user_id) == admin_context["user_id"]


@pytest.mark.integration
def test_import_endpoint_rejects_other_file_types(client, admin_context):
    response = client.post("/visitors/import", files={"file": ("visitors.csv", io.BytesIO(b"a,b"), "text/csv")})
    assert response.status_code == 400
    assert response.json()["detail"] == "Please upload an Excel (.xlsx) file."


@pytest.mark.integration
def test_visitor_confirmation_history(client, admin_context):
    with SessionLocal() as session:
        event = make_event(session)
        nda = make_document(session, "NDA", events=[event], versions=2)
        visitor = make_visitor(session, first_name="Ada", last_name="Lovelace")
        invite(session, visitor, event)
        session.commit()
        record_confirmation(session, visitor.id, event.id, nda.id)
        session.commit()
        first = next(version for version in nda.versions if version.version_number == 1)
        set_current_version(session, nda.id, first.id)
        session.commit()
        visitor_id, event_id = str(visitor.id), str(event.id)

    response = client.get(f"/visitors/{visitor_id}/events/{event_id}/confirmations")

    assert response.status_code == 200
    body = response.json()
    assert body["visitor_name"] == "Ada Lovelace"
    assert body["assigned"] is True
    assert body["documents"][0]["state"] == "stale"
    assert body["documents"][0]["current_version_number"] == 1
    assert [(item["version_number"], item["is_current_version"]) for item in body["history"]] == [(2, False)]


@pytest.mark.integration
def test_visitor_confirmation_history_unknown_visitor(client, admin_context):
    response = client.get(f"/visitors/{uuid.uuid4()}/events/{uuid.uuid4()}/confirmations")
    assert response.status_code == 404
    assert response.json()["detail"] == "Visitor not found"
