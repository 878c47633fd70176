"""SWMS admin router - campaign commands and job metrics."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from swms_api.core.deps import (
    CSRF_HEADER,
    CSRF_HEADER_VALUE,
    get_current_session,
    get_db,
    get_optional_session,
    has_csrf_header,
)
from swms_api.db.enums import SwmsJobStatus
from swms_api.schemas.auth import UserSession
from swms_api.schemas.compliance import JobMetricsRead, JobMetricsResponse
from swms_api.schemas.swms_actions import CampaignActionRequest, CampaignActionResponse
from swms_api.services import swms_action_dispatcher, swms_job_service
from swms_api.services.report_export_service import ReportExporter, get_report_exporter
from swms_api.services.swms_action_errors import (
    ActionValidationError,
    ForbiddenError,
    SwmsActionError,
    UnauthorizedError,
)

router = APIRouter(prefix="/admin/swms", tags=["SWMS"])


def _envelope(status_code: int, response: CampaignActionResponse) -> JSONResponse:
    content: dict[str, Any] = {"success": response.success}
    for key in ("message", "data", "error"):
        value = getattr(response, key)
        if value is not None:
            content[key] = value
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def _error_envelope(exc: SwmsActionError) -> JSONResponse:
    return _envelope(exc.status_code, CampaignActionResponse(success=False, error=exc.message))


@router.post(
    "/campaigns",
    response_model=CampaignActionResponse,
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {
                "application/json": {"schema": CampaignActionRequest.model_json_schema()}
            },
        }
    },
)
async def run_campaign_action(
    request: Request,
    db: Session = Depends(get_db),
    session: UserSession | None = Depends(get_optional_session),
    exporter: ReportExporter = Depends(get_report_exporter),
) -> JSONResponse:
    """
    Run one campaign command.

    Always answers with an envelope: {success, message?, data?, error?}.
    """
    if session is None:
        return _error_envelope(UnauthorizedError())
    if not has_csrf_header(request):
        return _error_envelope(
            ForbiddenError(f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'")
        )

    try:
        body = await request.json()
    except ValueError:
        return _error_envelope(ActionValidationError("Request body must be valid JSON"))

    status_code, response = await run_in_threadpool(
        swms_action_dispatcher.dispatch,
        db,
        session,
        body,
        exporter=exporter,
        request_id=request.headers.get("X-Request-ID"),
    )
    return _envelope(status_code, response)


@router.get("/jobs/metrics", response_model=JobMetricsResponse)
def list_job_metrics(
    job_site_id: UUID | None = None,
    status: SwmsJobStatus | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
) -> JobMetricsResponse:
    """Completion metrics per SWMS job."""
    rows = swms_job_service.list_job_metrics(
        db,
        job_site_id=job_site_id,
        status=status.value if status else None,
    )
    return JobMetricsResponse(
        items=[
            JobMetricsRead(
                job_name=job.name,
                job_site_id=job.job_site_id,
                status=job.status,
                **metrics.as_dict(),
            )
            for job, metrics in rows
        ]
    )
