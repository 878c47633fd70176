"""Compliance router - timeline and audit trail."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from swms_api.core.deps import get_current_session, get_db
from swms_api.schemas.auth import UserSession
from swms_api.schemas.compliance import (
    AuditTrailEntry,
    AuditTrailResponse,
    TimelineCategory,
    TimelineResponse,
)
from swms_api.services import timeline_service
from swms_api.services.compliance_engine import as_utc


router = APIRouter(prefix="/admin/compliance", tags=["Compliance"])


@router.get("/timeline", response_model=TimelineResponse)
def get_timeline(
    job_site_id: UUID | None = None,
    contractor_id: UUID | None = None,
    swms_job_id: UUID | None = None,
    days_back: int | None = Query(default=None, ge=1, le=365),
    category: TimelineCategory = "all",
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
) -> TimelineResponse:
    """Merged submission, change-log and notification events, newest first."""
    events = timeline_service.fetch_timeline(
        db,
        job_site_id=job_site_id,
        contractor_id=contractor_id,
        swms_job_id=swms_job_id,
        days_back=days_back,
    )
    return TimelineResponse(
        category=category,
        timeline=timeline_service.filter_events(events, category),
    )


@router.get("/audit-trail", response_model=AuditTrailResponse)
def get_audit_trail(
    job_site_id: UUID | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
) -> AuditTrailResponse:
    """Change-log rows with optional site and date filters."""
    if start_date and end_date and as_utc(start_date) > as_utc(end_date):
        raise HTTPException(status_code=400, detail="start_date must be before end_date")

    rows = timeline_service.list_audit_trail(
        db,
        job_site_id=job_site_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    return AuditTrailResponse(
        audit_trail=[
            AuditTrailEntry.model_validate(entry).model_copy(update={"changed_by_email": email})
            for entry, email in rows
        ]
    )
