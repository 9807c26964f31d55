from __future__ import annotations

import io
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ..dependencies.auth import AuthContext, require_admin
from ..dependencies.db import get_db
from ..services.reports import (
    ReportResult,
    UnknownReportError,
    available_reports,
    export_xlsx,
    report_filename,
    run_report,
)

router = APIRouter(prefix="/reports")

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _run(db: Session, report_id: str, search: Optional[str]) -> ReportResult:
    try:
        return run_report(db, report_id, search=search)
    except UnknownReportError as exc:
        raise HTTPException(status_code=404, detail="Report not found") from exc


@router.get("")
def list_reports(context: AuthContext = Depends(require_admin)):
    return {
        "items": [
            {"id": report.id, "name": report.name, "description": report.description}
            for report in available_reports()
        ]
    }


@router.get("/{report_id}")
def get_report(
    report_id: str,
    search: Optional[str] = None,
    context: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return _run(db, report_id, search).as_dict()


@router.get("/{report_id}/download")
def download_report(
    report_id: str,
    search: Optional[str] = None,
    context: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    result = _run(db, report_id, search)
    filename = report_filename(result.report)
    return StreamingResponse(
        io.BytesIO(export_xlsx(result)),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
