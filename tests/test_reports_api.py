from __future__ import annotations

import io
import re

import pytest
from openpyxl import load_workbook

from conftest import invite, make_event, make_organization, make_visitor
from visitor_api.db.session import SessionLocal


def _seed() -> None:
    with SessionLocal() as session:
        acme = make_organization(session, "Acme Corp")
        event = make_event(session, name="Plant Tour", sponsor_organization_id=acme.id)
        invite(session, make_visitor(session, first_name="Ada", organization_id=acme.id), event)
        invite(session, make_visitor(session, first_name="Alan", last_name="Turing"), event)
        session.commit()


@pytest.mark.integration
def test_report_catalogue(client, admin_context):
    response = client.get("/reports")
    assert response.status_code == 200
    assert {item["id"] for item in response.json()["items"]} == {
        "visitors-by-event",
        "events-by-organization",
        "document-confirmations",
    }


@pytest.mark.integration
def test_report_rows_with_search(client, admin_context):
    _seed()

    response = client.get("/reports/visitors-by-event", params={"search": "turing"})

    assert response.status_code == 200
    body = response.json()
    assert [column["key"] for column in body["columns"]][:2] == ["event_name", "event_date"]
    assert [row["visitor_name"] for row in body["rows"]] == ["Alan Turing"]


@pytest.mark.integration
def test_unknown_report_returns_404(client, admin_context):
    response = client.get("/reports/nope")
    assert response.status_code == 404
    assert response.json()["detail"] == "Report not found"


@pytest.mark.integration
def test_report_download_is_a_workbook(client, admin_context):
    _seed()

    response = client.get("/reports/events-by-organization/download")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    disposition = response.headers["content-disposition"]
    assert re.search(r'filename="Events_by_Organization_\d{8}\.xlsx"', disposition)

    worksheet = load_workbook(io.BytesIO(response.content)).active
    assert worksheet.cell(row=2, column=1).value == "Acme Corp"
    assert worksheet.cell(row=2, column=5).value == 2
