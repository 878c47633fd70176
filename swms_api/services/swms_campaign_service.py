"""SWMS campaign actions.

Every action has the same shape: select candidates, check preconditions,
mutate, write exactly one notification audit (also when there was nothing
to do), return a summary. Actions never commit; the dispatcher owns the
transaction, so campaign + sends + audit land together or not at all.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, TypeVar
from uuid import UUID

from sqlalchemy import Select, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from swms_api.core.config import settings
from swms_api.core.deadlines import DeadlineExceeded, is_statement_timeout
from swms_api.core.security import generate_portal_token
from swms_api.db.enums import (
    AWAITING_REVIEW_STATUSES,
    REMINDER_STATUSES,
    DeliveryStatus,
    NotificationAuditKind,
    SwmsCampaignStatus,
    SwmsCampaignType,
    SwmsJobStatus,
    SwmsSubmissionStatus,
)
from swms_api.db.models import Contractor, EmailCampaign, EmailSend, SwmsJob, SwmsSubmission
from swms_api.schemas.auth import UserSession
from swms_api.schemas.swms_actions import (
    BroadcastUpdateCommand,
    BulkApproveCommand,
    CampaignCommand,
    ComplianceCheckCommand,
    GenerateReportCommand,
    PauseCampaignsCommand,
    SendReminderCommand,
    UrgentNotificationCommand,
    WeeklyCampaignCommand,
)
from swms_api.services import compliance_engine, notification_audit_service
from swms_api.services.report_export_service import (
    ReportExporter,
    ReportExportError,
    ReportExportTimeout,
)
from swms_api.services.swms_action_errors import (
    ActionTimeout,
    ActionValidationError,
    DependencyFailure,
    SwmsActionError,
)

logger = logging.getLogger(__name__)

TRIGGERED_BY = "admin_quick_action"
BULK_APPROVAL_NOTE_PREFIX = "Bulk approved via admin quick action: "


@dataclass(frozen=True)
class ActionContext:
    """Who is acting, the clock reading and the collaborators for one action."""

    actor: UserSession
    now: datetime
    overdue_threshold: timedelta = field(
        default_factory=lambda: timedelta(hours=settings.OVERDUE_THRESHOLD_HOURS)
    )
    exporter: ReportExporter | None = None


@dataclass
class ActionResult:
    message: str
    data: dict[str, Any]


F = TypeVar("F", bound=Callable[..., ActionResult])


def store_boundary(failure_message: str) -> Callable[[F], F]:
    """
    Convert store errors raised inside an action into dispatcher errors.

    SQLAlchemy errors become DependencyFailure; a deadline overrun (client
    side or a Postgres statement_timeout) becomes ActionTimeout.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except SwmsActionError:
                raise
            except DeadlineExceeded as exc:
                raise ActionTimeout(str(exc)) from exc
            except SQLAlchemyError as exc:
                if is_statement_timeout(exc):
                    raise ActionTimeout("Action exceeded its deadline") from exc
                raise DependencyFailure(f"{failure_message}: database error") from exc

        return wrapper  # type: ignore[return-value]

    return decorator


# =============================================================================
# Helpers
# =============================================================================

def _base_payload(ctx: ActionContext, command: CampaignCommand) -> dict[str, Any]:
    return {
        "action": command.action.value,
        "triggered_by": TRIGGERED_BY,
        "actor_id": ctx.actor.user_id,
        "job_site_id": command.job_site_id,
    }


def _id_list(ids: Iterable[UUID | None]) -> list[UUID]:
    """Distinct non-null ids in a stable order."""
    return sorted({value for value in ids if value is not None}, key=str)


def _scope_jobs(stmt: Select, command: CampaignCommand) -> Select:
    """Restrict a statement already joined to SwmsJob to the command's site."""
    if command.job_site_id:
        stmt = stmt.where(SwmsJob.job_site_id == command.job_site_id)
    return stmt


def _site_job_ids(job_site_id: UUID) -> Select:
    return select(SwmsJob.id).where(SwmsJob.job_site_id == job_site_id)


def _create_campaign(
    db: Session,
    ctx: ActionContext,
    campaign_type: SwmsCampaignType,
    swms_job_id: UUID | None = None,
    message: str | None = None,
) -> EmailCampaign:
    campaign = EmailCampaign(
        swms_job_id=swms_job_id,
        campaign_type=campaign_type.value,
        status=SwmsCampaignStatus.ACTIVE.value,
        scheduled_date=ctx.now,
        message=message,
        created_by=ctx.actor.user_id,
    )
    db.add(campaign)
    return campaign


def _insert_sends(
    db: Session,
    campaign_id: UUID,
    recipients: list[tuple[UUID, str]],
    expires_at: datetime,
    now: datetime,
) -> int:
    """Insert one pending send per (contractor_id, email), each with a fresh portal token."""
    rows = [
        {
            "campaign_id": campaign_id,
            "contractor_id": contractor_id,
            "email_address": email,
            "portal_token": generate_portal_token(),
            "token_expires_at": expires_at,
            "delivery_status": DeliveryStatus.PENDING.value,
            "created_at": now,
        }
        for contractor_id, email in recipients
    ]
    if rows:
        db.execute(insert(EmailSend), rows)
    return len(rows)


def _resolve_contractors(db: Session, command: CampaignCommand) -> list[Contractor]:
    """
    Contractors targeted by a site alert or broadcast.

    Scoped through submissions -> jobs when a site or job is given,
    otherwise every contractor.
    """
    if command.swms_job_id and db.get(SwmsJob, command.swms_job_id) is None:
        raise ActionValidationError("SWMS job not found")

    stmt = select(Contractor)
    if command.job_site_id or command.swms_job_id:
        stmt = (
            stmt.join(SwmsSubmission, SwmsSubmission.contractor_id == Contractor.id)
            .join(SwmsJob, SwmsJob.id == SwmsSubmission.swms_job_id)
            .distinct()
        )
        stmt = _scope_jobs(stmt, command)
        if command.swms_job_id:
            stmt = stmt.where(SwmsJob.id == command.swms_job_id)
    stmt = stmt.order_by(Contractor.name, Contractor.id)
    return list(db.scalars(stmt))


def _fan_out(
    db: Session,
    ctx: ActionContext,
    command: CampaignCommand,
    campaign_type: SwmsCampaignType,
    message: str,
    ttl: timedelta,
) -> tuple[EmailCampaign | None, list[UUID], int]:
    """
    Create one campaign and a send per contractor with an email.

    Returns the campaign (None if nobody is targeted), the targeted
    contractor ids and the number of sends.
    """
    contractors = _resolve_contractors(db, command)
    if not contractors:
        return None, [], 0

    campaign = _create_campaign(
        db, ctx, campaign_type, swms_job_id=command.swms_job_id, message=message
    )
    db.flush()

    recipients = [(c.id, c.contact_email) for c in contractors if c.contact_email]
    sent = _insert_sends(db, campaign.id, recipients, ctx.now + ttl, ctx.now)
    return campaign, _id_list(c.id for c in contractors), sent


# =============================================================================
# Actions
# =============================================================================

@store_boundary("Failed to create reminder campaigns")
def send_reminder(db: Session, ctx: ActionContext, command: SendReminderCommand) -> ActionResult:
    """One manual_reminder campaign per active job with outstanding submissions."""
    stmt = (
        select(SwmsJob.id, Contractor.id, Contractor.contact_email)
        .join(SwmsSubmission, SwmsSubmission.swms_job_id == SwmsJob.id)
        .join(Contractor, Contractor.id == SwmsSubmission.contractor_id)
        .where(
            SwmsJob.status == SwmsJobStatus.ACTIVE.value,
            SwmsSubmission.status.in_(REMINDER_STATUSES),
        )
        .order_by(SwmsJob.created_at, SwmsJob.id, Contractor.id)
    )
    stmt = _scope_jobs(stmt, command)

    # job id -> {contractor id: email}, in query order
    targets: dict[UUID, dict[UUID, str | None]] = {}
    for job_id, contractor_id, email in db.execute(stmt):
        targets.setdefault(job_id, {})[contractor_id] = email

    payload = _base_payload(ctx, command)
    payload["campaign_type"] = SwmsCampaignType.MANUAL_REMINDER.value

    if not targets:
        payload.update(campaigns_created=0, jobs_targeted=0, reminders_sent=0)
        notification_audit_service.record_action(
            db, NotificationAuditKind.REMINDER_MANUAL, payload
        )
        return ActionResult(
            message="No pending SWMS submissions found for reminders",
            data={"reminders_sent": 0},
        )

    expires_at = ctx.now + timedelta(days=settings.PORTAL_TOKEN_TTL_DAYS)
    campaigns = [
        _create_campaign(db, ctx, SwmsCampaignType.MANUAL_REMINDER, swms_job_id=job_id)
        for job_id in targets
    ]
    db.flush()

    reminders_sent = 0
    for campaign in campaigns:
        recipients = [
            (contractor_id, email)
            for contractor_id, email in targets[campaign.swms_job_id].items()
            if email
        ]
        reminders_sent += _insert_sends(db, campaign.id, recipients, expires_at, ctx.now)

    payload.update(
        campaigns_created=len(campaigns),
        jobs_targeted=len(targets),
        reminders_sent=reminders_sent,
        campaign_ids=[c.id for c in campaigns],
        swms_job_ids=_id_list(targets),
        contractor_ids=_id_list(
            contractor_id for contractors in targets.values() for contractor_id in contractors
        ),
    )
    notification_audit_service.record_action(db, NotificationAuditKind.REMINDER_MANUAL, payload)

    return ActionResult(
        message=(
            f"Reminder campaigns created for {len(campaigns)} SWMS jobs "
            "with pending submissions"
        ),
        data={
            "reminders_sent": reminders_sent,
            "campaigns_created": len(campaigns),
            "jobs_targeted": len(targets),
        },
    )


@store_boundary("Failed to approve submissions")
def bulk_approve(db: Session, ctx: ActionContext, command: BulkApproveCommand) -> ActionResult:
    """
    Approve every submitted submission in scope in one UPDATE.

    The criteria text is appended to each submission's notes; it is the
    only record of why the batch was approved.
    """
    criteria = command.parameters.approval_criteria
    note = f"{BULK_APPROVAL_NOTE_PREFIX}{criteria}"

    stmt = (
        update(SwmsSubmission)
        .where(SwmsSubmission.status == SwmsSubmissionStatus.SUBMITTED.value)
        .values(
            status=SwmsSubmissionStatus.APPROVED.value,
            reviewed_at=ctx.now,
            reviewed_by=ctx.actor.user_id,
            notes=func.coalesce(SwmsSubmission.notes + "\n", "") + note,
            updated_at=ctx.now,
        )
        .returning(SwmsSubmission.id, SwmsSubmission.swms_job_id, SwmsSubmission.contractor_id)
        .execution_options(synchronize_session=False)
    )
    if command.job_site_id:
        stmt = stmt.where(SwmsSubmission.swms_job_id.in_(_site_job_ids(command.job_site_id)))

    approved = db.execute(stmt).all()
    approved_ids = sorted((row.id for row in approved), key=str)
    logger.info("Bulk approval matched %d submissions", len(approved_ids))

    notification_audit_service.record_status_changes(
        db,
        table_name=SwmsSubmission.__tablename__,
        record_ids=approved_ids,
        old_status=SwmsSubmissionStatus.SUBMITTED.value,
        new_status=SwmsSubmissionStatus.APPROVED.value,
        changed_by=ctx.actor.user_id,
        extra_new_values={"reviewed_by": ctx.actor.user_id, "job_site_id": command.job_site_id},
    )

    payload = _base_payload(ctx, command)
    payload.update(
        approval_criteria=criteria,
        submissions_approved=len(approved_ids),
        submission_ids=approved_ids,
        swms_job_ids=_id_list(row.swms_job_id for row in approved),
        contractor_ids=_id_list(row.contractor_id for row in approved),
    )
    notification_audit_service.record_action(db, NotificationAuditKind.BULK_APPROVAL, payload)

    if not approved_ids:
        message = "No eligible submissions found for bulk approval"
    else:
        message = f"Successfully approved {len(approved_ids)} SWMS submissions"
    return ActionResult(message=message, data={"approved_count": len(approved_ids)})


def load_compliance_snapshot(
    db: Session,
    now: datetime,
    threshold: timedelta,
    job_site_id: UUID | None = None,
) -> compliance_engine.ComplianceSnapshot:
    """The five compliance counts, each from its own COUNT query."""

    def count_jobs() -> int:
        stmt = select(func.count(SwmsJob.id)).where(SwmsJob.status == SwmsJobStatus.ACTIVE.value)
        if job_site_id:
            stmt = stmt.where(SwmsJob.job_site_id == job_site_id)
        return db.scalar(stmt) or 0

    def count_submissions(*criteria) -> int:
        stmt = select(func.count(SwmsSubmission.id)).where(*criteria)
        if job_site_id:
            stmt = stmt.where(SwmsSubmission.swms_job_id.in_(_site_job_ids(job_site_id)))
        return db.scalar(stmt) or 0

    def count_campaigns() -> int:
        stmt = select(func.count(EmailCampaign.id)).where(
            EmailCampaign.status == SwmsCampaignStatus.ACTIVE.value
        )
        if job_site_id:
            stmt = stmt.where(EmailCampaign.swms_job_id.in_(_site_job_ids(job_site_id)))
        return db.scalar(stmt) or 0

    cutoff = compliance_engine.overdue_cutoff(now, threshold)
    return compliance_engine.ComplianceSnapshot(
        active_jobs=count_jobs(),
        approved_submissions=count_submissions(
            SwmsSubmission.status == SwmsSubmissionStatus.APPROVED.value
        ),
        pending_submissions=count_submissions(
            SwmsSubmission.status.in_(AWAITING_REVIEW_STATUSES)
        ),
        overdue_submissions=count_submissions(
            SwmsSubmission.status.in_(AWAITING_REVIEW_STATUSES),
            SwmsSubmission.created_at < cutoff,
        ),
        active_campaigns=count_campaigns(),
    )


@store_boundary("Failed to run compliance check")
def compliance_check(
    db: Session, ctx: ActionContext, command: ComplianceCheckCommand
) -> ActionResult:
    snapshot = load_compliance_snapshot(
        db, ctx.now, ctx.overdue_threshold, job_site_id=command.job_site_id
    )
    metrics = snapshot.as_metrics()
    rate = snapshot.compliance_rate

    payload = _base_payload(ctx, command)
    payload.update(
        compliance_rate=rate,
        metrics=metrics,
        overdue_threshold_hours=ctx.overdue_threshold.total_seconds() / 3600,
        checked_at=ctx.now.isoformat(),
    )
    notification_audit_service.record_action(db, NotificationAuditKind.COMPLIANCE_CHECK, payload)

    return ActionResult(
        message=(
            f"Compliance Check Complete: {rate}% compliant "
            f"({snapshot.pending_submissions} pending, {snapshot.overdue_submissions} overdue)"
        ),
        data={"compliance_rate": rate, **metrics},
    )


@store_boundary("Failed to send urgent notification")
def urgent_notification(
    db: Session, ctx: ActionContext, command: UrgentNotificationCommand
) -> ActionResult:
    message = command.parameters.urgent_message
    campaign, contractor_ids, sent = _fan_out(
        db,
        ctx,
        command,
        SwmsCampaignType.URGENT_SAFETY_ALERT,
        message,
        timedelta(hours=settings.URGENT_TOKEN_TTL_HOURS),
    )

    payload = _base_payload(ctx, command)
    payload.update(
        campaign_type=SwmsCampaignType.URGENT_SAFETY_ALERT.value,
        message=message,
        swms_job_id=command.swms_job_id,
        contractor_ids=contractor_ids,
        campaign_id=campaign.id if campaign else None,
        notifications_sent=sent,
    )
    notification_audit_service.record_action(
        db, NotificationAuditKind.URGENT_NOTIFICATION, payload
    )

    if campaign is None:
        return ActionResult(
            message="No contractors found for urgent notification",
            data={"notifications_sent": 0},
        )
    return ActionResult(
        message=f"Urgent safety alert sent to {sent} contractors",
        data={"notifications_sent": sent, "campaign_id": campaign.id},
    )


@store_boundary("Failed to create weekly campaigns")
def weekly_campaign(
    db: Session, ctx: ActionContext, command: WeeklyCampaignCommand
) -> ActionResult:
    """One weekly_reminder campaign per active job. Sends are produced elsewhere."""
    stmt = select(SwmsJob.id).where(SwmsJob.status == SwmsJobStatus.ACTIVE.value)
    stmt = _scope_jobs(stmt, command).order_by(SwmsJob.created_at, SwmsJob.id)
    job_ids = list(db.scalars(stmt))

    campaigns = [
        _create_campaign(db, ctx, SwmsCampaignType.WEEKLY_REMINDER, swms_job_id=job_id)
        for job_id in job_ids
    ]
    db.flush()

    payload = _base_payload(ctx, command)
    payload.update(
        campaign_type=SwmsCampaignType.WEEKLY_REMINDER.value,
        campaigns_created=len(campaigns),
        jobs_targeted=len(job_ids),
        campaign_ids=[c.id for c in campaigns],
        swms_job_ids=_id_list(job_ids),
    )
    notification_audit_service.record_action(db, NotificationAuditKind.WEEKLY_CAMPAIGN, payload)

    if not job_ids:
        message = "No active SWMS jobs found for weekly campaign"
    else:
        message = f"Weekly SWMS compliance campaigns launched for {len(campaigns)} active jobs"
    return ActionResult(
        message=message,
        data={"campaigns_created": len(campaigns), "jobs_targeted": len(job_ids)},
    )


@store_boundary("Failed to generate compliance report")
def generate_report(
    db: Session, ctx: ActionContext, command: GenerateReportCommand
) -> ActionResult:
    """Request an export from the Work Safe export function and return its handle."""
    if ctx.exporter is None:
        raise DependencyFailure("Report exporter is not available")

    params = command.parameters
    job_site_ids = [command.job_site_id] if command.job_site_id else []
    try:
        handle = ctx.exporter.export(
            job_site_ids=job_site_ids,
            format=params.format,
            include_audit_trail=params.include_audit_trail,
        )
    except ReportExportTimeout as exc:
        raise ActionTimeout(str(exc)) from exc
    except ReportExportError as exc:
        raise DependencyFailure(str(exc)) from exc

    payload = _base_payload(ctx, command)
    payload.update(
        format=params.format,
        include_audit_trail=params.include_audit_trail,
        export_id=handle.export_id,
        expires_at=handle.expires_at,
    )
    notification_audit_service.record_action(
        db, NotificationAuditKind.COMPLIANCE_REPORT, payload
    )

    return ActionResult(
        message="Instant compliance report generated and ready for download",
        data={
            "download_url": handle.download_url,
            "expires_at": handle.expires_at,
            "export_id": handle.export_id,
        },
    )


@store_boundary("Failed to send broadcast")
def broadcast_update(
    db: Session, ctx: ActionContext, command: BroadcastUpdateCommand
) -> ActionResult:
    """Same targeting and persistence as urgent_notification, tagged site_broadcast."""
    message = command.parameters.broadcast_message
    campaign, contractor_ids, sent = _fan_out(
        db,
        ctx,
        command,
        SwmsCampaignType.SITE_BROADCAST,
        message,
        timedelta(days=settings.PORTAL_TOKEN_TTL_DAYS),
    )

    payload = _base_payload(ctx, command)
    payload.update(
        campaign_type=SwmsCampaignType.SITE_BROADCAST.value,
        message=message,
        swms_job_id=command.swms_job_id,
        contractor_ids=contractor_ids,
        campaign_id=campaign.id if campaign else None,
        broadcasts_sent=sent,
    )
    notification_audit_service.record_action(db, NotificationAuditKind.BROADCAST_UPDATE, payload)

    if campaign is None:
        return ActionResult(
            message="No contractors found for broadcast",
            data={"broadcasts_sent": 0},
        )
    return ActionResult(
        message=f"Site-wide broadcast sent to {sent} contractors",
        data={"broadcasts_sent": sent, "campaign_id": campaign.id},
    )


@store_boundary("Failed to pause campaigns")
def pause_campaigns(
    db: Session, ctx: ActionContext, command: PauseCampaignsCommand
) -> ActionResult:
    """Pause active campaigns. Paused and completed campaigns are left alone."""
    stmt = (
        update(EmailCampaign)
        .where(EmailCampaign.status == SwmsCampaignStatus.ACTIVE.value)
        .values(status=SwmsCampaignStatus.PAUSED.value, updated_at=ctx.now)
        .returning(EmailCampaign.id, EmailCampaign.swms_job_id)
        .execution_options(synchronize_session=False)
    )
    if command.job_site_id:
        stmt = stmt.where(EmailCampaign.swms_job_id.in_(_site_job_ids(command.job_site_id)))

    paused = db.execute(stmt).all()
    paused_ids = sorted((row.id for row in paused), key=str)
    logger.info("Paused %d campaigns", len(paused_ids))

    notification_audit_service.record_status_changes(
        db,
        table_name=EmailCampaign.__tablename__,
        record_ids=paused_ids,
        old_status=SwmsCampaignStatus.ACTIVE.value,
        new_status=SwmsCampaignStatus.PAUSED.value,
        changed_by=ctx.actor.user_id,
        extra_new_values={"job_site_id": command.job_site_id},
    )

    payload = _base_payload(ctx, command)
    payload.update(
        operation="pause_all",
        campaigns_paused=len(paused_ids),
        swms_job_ids=_id_list(row.swms_job_id for row in paused),
    )
    notification_audit_service.record_action(db, NotificationAuditKind.CAMPAIGN_CONTROL, payload)

    return ActionResult(
        message=f"{len(paused_ids)} automated SWMS campaigns have been paused",
        data={"campaigns_paused": len(paused_ids)},
    )
