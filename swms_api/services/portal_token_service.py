"""
Portal Token Service.

Resolves the portal tokens carried by campaign sends, records email
engagement (opens and clicks) against them, and takes document
submissions from contractors holding a valid link. A portal token only
grants access to the contractor submission portal; it is never accepted
as a session token.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from swms_api.core.config import settings
from swms_api.db.enums import (
    DeliveryStatus,
    NotificationAuditKind,
    SwmsJobStatus,
    SwmsSubmissionStatus,
)
from swms_api.db.models import EmailCampaign, EmailSend, SwmsSubmission
from swms_api.db.models.common import utcnow
from swms_api.services import notification_audit_service
from swms_api.services.compliance_engine import as_utc


logger = logging.getLogger(__name__)

ENGAGEMENT_OPEN = "open"
ENGAGEMENT_CLICK = "click"

# Deliveries that an open/click proves were delivered
_PROMOTABLE_STATUSES = {DeliveryStatus.PENDING.value, DeliveryStatus.SENT.value}


class PortalTokenNotFound(Exception):
    pass


class PortalTokenExpired(Exception):
    pass


class PortalJobInactive(Exception):
    """The link is valid but its SWMS job is not accepting submissions."""


class PortalLinkWithoutJob(Exception):
    """The link belongs to a campaign with no SWMS job to submit against."""


# =============================================================================
# URL Generation
# =============================================================================


def get_portal_url(token: str) -> str:
    """Contractor-facing portal link embedded in outbound email."""
    return f"{settings.FRONTEND_URL.rstrip('/')}/portal/{token}"


def get_tracking_pixel_url(token: str) -> str:
    return f"{settings.API_BASE_URL.rstrip('/')}/tracking/open/{token}"


def get_tracked_portal_url(token: str) -> str:
    """Portal link routed through click tracking."""
    return f"{settings.API_BASE_URL.rstrip('/')}/tracking/click/{token}"


# =============================================================================
# Resolution
# =============================================================================


def _get_send(db: Session, token: str) -> Optional[EmailSend]:
    return db.scalar(
        select(EmailSend)
        .options(joinedload(EmailSend.campaign).joinedload(EmailCampaign.swms_job))
        .where(EmailSend.portal_token == token)
    )


def resolve_portal_token(db: Session, token: str, now: datetime | None = None) -> EmailSend:
    """
    Return the send a portal token belongs to.

    Raises:
        PortalTokenNotFound: no send carries this token
        PortalTokenExpired: the token is past token_expires_at
        PortalJobInactive: the campaign's SWMS job is not active
    """
    send = _get_send(db, token)
    if send is None:
        raise PortalTokenNotFound("Portal link not found")

    now = now or utcnow()
    if as_utc(send.token_expires_at) <= as_utc(now):
        raise PortalTokenExpired("Portal link has expired")

    job = send.campaign.swms_job
    if job is not None and job.status != SwmsJobStatus.ACTIVE.value:
        raise PortalJobInactive("SWMS job is not currently active")
    return send


def list_contractor_submissions(db: Session, send: EmailSend) -> list[SwmsSubmission]:
    """The send's contractor's submissions for the campaign's job, newest first."""
    swms_job_id = send.campaign.swms_job_id
    if swms_job_id is None:
        return []
    return list(
        db.scalars(
            select(SwmsSubmission)
            .where(
                SwmsSubmission.swms_job_id == swms_job_id,
                SwmsSubmission.contractor_id == send.contractor_id,
            )
            .order_by(SwmsSubmission.created_at.desc(), SwmsSubmission.id)
        )
    )


# =============================================================================
# Submissions
# =============================================================================


def create_portal_submission(
    db: Session,
    token: str,
    *,
    document_name: str,
    file_url: str | None = None,
    now: datetime | None = None,
) -> SwmsSubmission:
    """
    Record a document submitted through a portal link.

    The submission (status submitted) and its insert change-log row are
    committed together. The token is validated exactly as for viewing the
    portal.

    Raises:
        PortalTokenNotFound, PortalTokenExpired, PortalJobInactive
        PortalLinkWithoutJob: the campaign has no SWMS job
    """
    now = now or utcnow()
    send = resolve_portal_token(db, token, now=now)
    campaign = send.campaign
    if campaign.swms_job_id is None:
        raise PortalLinkWithoutJob("Portal link is not tied to a SWMS job")

    submission = SwmsSubmission(
        swms_job_id=campaign.swms_job_id,
        contractor_id=send.contractor_id,
        document_name=document_name,
        file_url=file_url,
        status=SwmsSubmissionStatus.SUBMITTED.value,
        submitted_at=now,
        created_at=now,
        updated_at=now,
    )
    try:
        db.add(submission)
        db.flush()
        notification_audit_service.record_insert(
            db,
            table_name=SwmsSubmission.__tablename__,
            record_id=submission.id,
            new_values={
                "status": submission.status,
                "swms_job_id": submission.swms_job_id,
                "contractor_id": submission.contractor_id,
                "document_name": document_name,
                "job_site_id": campaign.swms_job.job_site_id,
                "campaign_id": campaign.id,
            },
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info("Recorded portal submission %s for campaign %s", submission.id, campaign.id)
    return submission


# =============================================================================
# Engagement
# =============================================================================


def _engagement_payload(send: EmailSend, kind: str) -> dict[str, Any]:
    campaign = send.campaign
    job = campaign.swms_job
    return {
        "event": kind,
        "send_id": send.id,
        "campaign_id": campaign.id,
        "campaign_type": campaign.campaign_type,
        "contractor_id": send.contractor_id,
        "swms_job_id": campaign.swms_job_id,
        "job_site_id": job.job_site_id if job else None,
    }


def record_engagement(
    db: Session,
    token: str,
    kind: str,
    now: datetime | None = None,
) -> bool:
    """
    Stamp the first open or click on a send and audit the event.

    An open or click also proves delivery, so pending/sent deliveries are
    promoted to delivered. Expired tokens are still recorded. Every event
    writes a swms_email_tracking notification audit, repeats included.

    Returns True if the token matched a send, False otherwise.
    """
    if kind not in (ENGAGEMENT_OPEN, ENGAGEMENT_CLICK):
        raise ValueError(f"Unknown engagement kind: {kind}")

    send = _get_send(db, token)
    if send is None:
        return False

    now = now or utcnow()
    if kind == ENGAGEMENT_OPEN and not send.opened_at:
        send.opened_at = now
    if kind == ENGAGEMENT_CLICK:
        if not send.clicked_at:
            send.clicked_at = now
        # A click implies the email was opened
        if not send.opened_at:
            send.opened_at = now

    if send.delivery_status in _PROMOTABLE_STATUSES:
        send.delivery_status = DeliveryStatus.DELIVERED.value

    notification_audit_service.record_action(
        db, NotificationAuditKind.EMAIL_TRACKING, _engagement_payload(send, kind)
    )
    db.commit()
    logger.debug("Recorded %s for send %s", kind, send.id)
    return True
