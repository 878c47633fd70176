"""
Contractor Portal and Email Tracking Router.

Public endpoints reached from outbound campaign email. They are
unauthenticated: the portal token in the path is the only credential.
"""

import base64
import logging

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from swms_api.core.deps import get_db
from swms_api.schemas.compliance import (
    PortalSendRead,
    PortalSubmissionCreate,
    PortalSubmissionRead,
)
from swms_api.services import portal_token_service
from swms_api.services.portal_token_service import (
    PortalJobInactive,
    PortalLinkWithoutJob,
    PortalTokenExpired,
    PortalTokenNotFound,
)


logger = logging.getLogger(__name__)

portal_router = APIRouter(prefix="/portal", tags=["portal"])
tracking_router = APIRouter(prefix="/tracking", tags=["tracking"])


# 1x1 transparent GIF
TRANSPARENT_GIF = base64.b64decode("R0lGODlhAQABAIAAAP///wAAACH5BAEAAAAALAAAAAABAAEAAAICRAEAOw==")

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _portal_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, PortalTokenNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, PortalTokenExpired):
        return HTTPException(status_code=410, detail=str(exc))
    if isinstance(exc, PortalJobInactive):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@portal_router.get("/{token}", response_model=PortalSendRead)
def open_portal(token: str, db: Session = Depends(get_db)) -> PortalSendRead:
    """
    Resolve a portal token to the campaign it was issued for, with the
    contractor's submissions for the campaign's job.

    404 for unknown tokens, 410 once the token has expired, 409 when the
    job is not active.
    """
    try:
        send = portal_token_service.resolve_portal_token(db, token)
    except (PortalTokenNotFound, PortalTokenExpired, PortalJobInactive) as exc:
        raise _portal_http_error(exc) from exc

    campaign = send.campaign
    return PortalSendRead(
        campaign_id=campaign.id,
        campaign_type=campaign.campaign_type,
        contractor_id=send.contractor_id,
        swms_job_id=campaign.swms_job_id,
        swms_job_name=campaign.swms_job.name if campaign.swms_job else None,
        message=campaign.message,
        token_expires_at=send.token_expires_at,
        submissions=[
            PortalSubmissionRead.model_validate(submission)
            for submission in portal_token_service.list_contractor_submissions(db, send)
        ],
    )


@portal_router.post("/{token}/submissions", response_model=PortalSubmissionRead, status_code=201)
def submit_document(
    token: str,
    data: PortalSubmissionCreate,
    db: Session = Depends(get_db),
) -> PortalSubmissionRead:
    """
    Record a SWMS document submitted through a portal link.

    Same token checks as opening the portal; 400 if the link has no job.
    """
    try:
        submission = portal_token_service.create_portal_submission(
            db, token, document_name=data.document_name, file_url=data.file_url
        )
    except (
        PortalTokenNotFound,
        PortalTokenExpired,
        PortalJobInactive,
        PortalLinkWithoutJob,
    ) as exc:
        raise _portal_http_error(exc) from exc
    return PortalSubmissionRead.model_validate(submission)


@tracking_router.get("/open/{token}")
def track_open(token: str, db: Session = Depends(get_db)) -> Response:
    """
    Record an email open and return a 1x1 transparent GIF.

    Best effort: the pixel is returned even if recording fails.
    """
    try:
        portal_token_service.record_engagement(db, token, portal_token_service.ENGAGEMENT_OPEN)
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Failed to record open for a portal token", exc_info=True)

    return Response(content=TRANSPARENT_GIF, media_type="image/gif", headers=NO_CACHE_HEADERS)


@tracking_router.get("/click/{token}")
def track_click(token: str, db: Session = Depends(get_db)) -> Response:
    """Record a portal link click and redirect to the contractor portal."""
    try:
        portal_token_service.record_engagement(db, token, portal_token_service.ENGAGEMENT_CLICK)
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Failed to record click for a portal token", exc_info=True)

    return RedirectResponse(url=portal_token_service.get_portal_url(token), status_code=302)
