"""Compliance timeline - merges submissions, change-log rows and notification audits.

Each source is queried independently and turned into TimelineEvents; the
merge and the category filter are pure functions over those lists so they
can be rerun (and tested) without touching the store.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from itertools import islice
from typing import Any, Iterable, Sequence
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, joinedload

from swms_api.core.config import settings
from swms_api.db.enums import (
    AuditResult,
    ChangeLogAction,
    NotificationAuditKind,
    SwmsSubmissionStatus,
)
from swms_api.db.models import (
    EmailCampaign,
    NotificationAudit,
    SwmsAuditLog,
    SwmsJob,
    SwmsSubmission,
    User,
)
from swms_api.db.models.common import utcnow
from swms_api.schemas.compliance import TimelineContractor, TimelineEvent
from swms_api.services.compliance_engine import as_utc

# Tie-break order when two events share a timestamp
SOURCE_SUBMISSIONS = 0
SOURCE_AUDITS = 1
SOURCE_NOTIFICATIONS = 2

CATEGORY_TYPES: dict[str, set[str] | None] = {
    "all": None,
    "submissions": {"submission", "status_change"},
    "emails": {"email", "reminder"},
    "audits": {"audit"},
}

_NOTIFICATION_TYPES = {
    NotificationAuditKind.REMINDER_MANUAL.value: "reminder",
    NotificationAuditKind.WEEKLY_CAMPAIGN.value: "reminder",
    NotificationAuditKind.URGENT_NOTIFICATION.value: "email",
    NotificationAuditKind.BROADCAST_UPDATE.value: "email",
    NotificationAuditKind.EMAIL_AUTOMATION.value: "email",
    NotificationAuditKind.EMAIL_TRACKING.value: "email",
}

_NOTIFICATION_TITLES = {
    NotificationAuditKind.REMINDER_MANUAL.value: "Reminder Campaign Created",
    NotificationAuditKind.BULK_APPROVAL.value: "Bulk Approval",
    NotificationAuditKind.COMPLIANCE_CHECK.value: "Compliance Check",
    NotificationAuditKind.URGENT_NOTIFICATION.value: "Urgent Safety Alert",
    NotificationAuditKind.WEEKLY_CAMPAIGN.value: "Weekly Campaign Launched",
    NotificationAuditKind.COMPLIANCE_REPORT.value: "Compliance Report Generated",
    NotificationAuditKind.BROADCAST_UPDATE.value: "Site Broadcast",
    NotificationAuditKind.CAMPAIGN_CONTROL.value: "Campaigns Paused",
    NotificationAuditKind.EMAIL_AUTOMATION.value: "Email Campaign Sent",
    NotificationAuditKind.EMAIL_TRACKING.value: "Email Engagement",
}

_CHANGE_LOG_TITLES = {
    ChangeLogAction.INSERT.value: "Record Created",
    ChangeLogAction.UPDATE.value: "Record Updated",
    ChangeLogAction.DELETE.value: "Record Deleted",
    ChangeLogAction.STATUS_UPDATE.value: "Status Changed",
}

_CHANGE_LOG_VERBS = {
    ChangeLogAction.INSERT.value: "created",
    ChangeLogAction.UPDATE.value: "updated",
    ChangeLogAction.DELETE.value: "deleted",
}


def _iso(value: datetime) -> str:
    return as_utc(value).isoformat()


def _submission_status(status: str, reviewed: bool) -> str:
    if status == SwmsSubmissionStatus.APPROVED.value:
        return "success"
    if status == SwmsSubmissionStatus.REJECTED.value:
        return "failed"
    return "warning" if reviewed else "pending"


# =============================================================================
# Event builders
# =============================================================================

def submission_events(submissions: Iterable[SwmsSubmission]) -> list[TimelineEvent]:
    """
    A submitted event per submission that has been submitted, plus a review
    event once reviewed. Pending submissions with no submitted_at produce
    no submitted event.
    """
    events: list[TimelineEvent] = []
    for submission in submissions:
        contractor = submission.contractor
        contractor_ref = (
            TimelineContractor(id=contractor.id, name=contractor.name) if contractor else None
        )
        contractor_name = contractor.name if contractor else "Unknown contractor"
        job_name = submission.swms_job.name if submission.swms_job else "Unknown job"

        if submission.submitted_at:
            events.append(
                TimelineEvent(
                    id=f"submission-{submission.id}",
                    type="submission",
                    title="SWMS Document Submitted",
                    description=f"{contractor_name} submitted SWMS for {job_name}",
                    timestamp=_iso(submission.submitted_at),
                    contractor=contractor_ref,
                    status=_submission_status(submission.status, reviewed=False),
                    metadata={"submission_id": str(submission.id), "status": submission.status},
                )
            )

        if submission.reviewed_at:
            approved = submission.status == SwmsSubmissionStatus.APPROVED.value
            events.append(
                TimelineEvent(
                    id=f"review-{submission.id}",
                    type="status_change",
                    title="SWMS Approved" if approved else "SWMS Reviewed",
                    description=submission.notes or f"SWMS submission {submission.status}",
                    timestamp=_iso(submission.reviewed_at),
                    contractor=contractor_ref,
                    status=_submission_status(submission.status, reviewed=True),
                    metadata={
                        "submission_id": str(submission.id),
                        "review_status": submission.status,
                    },
                )
            )
    return events


def change_log_events(entries: Iterable[SwmsAuditLog]) -> list[TimelineEvent]:
    events = []
    for entry in entries:
        table = entry.table_name.replace("_", " ")
        if entry.action_type == ChangeLogAction.STATUS_UPDATE.value:
            description = f"Status updated for {table}"
        elif entry.action_type in _CHANGE_LOG_VERBS:
            description = f"{table} {_CHANGE_LOG_VERBS[entry.action_type]}"
        else:
            description = f"{entry.action_type} on {table}"
        events.append(
            TimelineEvent(
                id=f"audit-{entry.id}",
                type="audit",
                title=_CHANGE_LOG_TITLES.get(entry.action_type, "System Action"),
                description=description,
                timestamp=_iso(entry.changed_at),
                status="success",
                metadata={
                    "table": entry.table_name,
                    "action": entry.action_type,
                    "record_id": str(entry.record_id),
                    "changes": entry.new_values,
                },
            )
        )
    return events


def _describe_notification(kind: str, payload: dict[str, Any]) -> str:
    if kind == NotificationAuditKind.REMINDER_MANUAL.value:
        return (
            f"{payload.get('reminders_sent', 0)} reminders across "
            f"{payload.get('campaigns_created', 0)} campaigns"
        )
    if kind == NotificationAuditKind.BULK_APPROVAL.value:
        return (
            f"{payload.get('submissions_approved', 0)} submissions approved: "
            f"{payload.get('approval_criteria', '')}"
        )
    if kind == NotificationAuditKind.COMPLIANCE_CHECK.value:
        return f"{payload.get('compliance_rate', 0)}% compliant"
    if kind == NotificationAuditKind.URGENT_NOTIFICATION.value:
        return f"Urgent alert sent to {payload.get('notifications_sent', 0)} contractors"
    if kind == NotificationAuditKind.BROADCAST_UPDATE.value:
        return f"Broadcast sent to {payload.get('broadcasts_sent', 0)} contractors"
    if kind == NotificationAuditKind.WEEKLY_CAMPAIGN.value:
        return f"{payload.get('campaigns_created', 0)} weekly campaigns created"
    if kind == NotificationAuditKind.CAMPAIGN_CONTROL.value:
        return f"{payload.get('campaigns_paused', 0)} campaigns paused"
    if kind == NotificationAuditKind.COMPLIANCE_REPORT.value:
        return f"{str(payload.get('format', 'csv')).upper()} export requested"
    if kind == NotificationAuditKind.EMAIL_TRACKING.value:
        if payload.get("event") == "click":
            return "Contractor clicked the portal link"
        return "Contractor opened the email"
    return (
        f"{payload.get('campaign_type') or 'Email'} sent to "
        f"{payload.get('emails_sent', 0)} contractors"
    )


def notification_events(audits: Iterable[NotificationAudit]) -> list[TimelineEvent]:
    events = []
    for audit in audits:
        payload = audit.payload or {}
        failed = audit.result != AuditResult.SUCCESS.value
        description = _describe_notification(audit.kind, payload)
        if failed and payload.get("error"):
            description = f"Failed: {payload['error']}"
        events.append(
            TimelineEvent(
                id=f"notification-{audit.id}",
                type=_NOTIFICATION_TYPES.get(audit.kind, "audit"),
                title=_NOTIFICATION_TITLES.get(audit.kind, "Notification"),
                description=description,
                timestamp=_iso(audit.created_at),
                status="failed" if failed else "success",
                metadata={"kind": audit.kind, **payload},
            )
        )
    return events


# =============================================================================
# Merge / filter (pure)
# =============================================================================

def merge_events(
    submissions: Sequence[TimelineEvent],
    audits: Sequence[TimelineEvent],
    notifications: Sequence[TimelineEvent],
) -> list[TimelineEvent]:
    """
    Newest first. Equal timestamps keep source order (submissions, audits,
    notifications) and then each source's own order, so the same inputs
    always produce the same list.
    """
    keyed = []
    for source_rank, source in (
        (SOURCE_SUBMISSIONS, submissions),
        (SOURCE_AUDITS, audits),
        (SOURCE_NOTIFICATIONS, notifications),
    ):
        for index, event in enumerate(source):
            instant = as_utc(datetime.fromisoformat(event.timestamp)).timestamp()
            keyed.append(((-instant, source_rank, index), event))
    keyed.sort(key=lambda item: item[0])
    return [event for _, event in keyed]


def filter_events(events: Sequence[TimelineEvent], category: str) -> list[TimelineEvent]:
    """Narrow an already merged list to a category. Never re-queries."""
    if category not in CATEGORY_TYPES:
        raise ValueError(f"Unknown timeline category: {category}")
    types = CATEGORY_TYPES[category]
    if types is None:
        return list(events)
    return [event for event in events if event.type in types]


# =============================================================================
# Queries
# =============================================================================

def _change_log_site_filter(job_site_id: UUID):
    site = str(job_site_id)
    return or_(
        SwmsAuditLog.record_id == job_site_id,
        SwmsAuditLog.new_values["job_site_id"].as_string() == site,
        SwmsAuditLog.old_values["job_site_id"].as_string() == site,
    )


def _change_log_subject_filter(
    contractor_id: UUID | None,
    swms_job_id: UUID | None,
    job_site_id: UUID | None,
):
    """
    Change-log rows about a contractor's or a job's records: their
    submissions, plus the contractor row itself or the job row and its
    campaigns.
    """
    submission_ids = select(SwmsSubmission.id)
    if contractor_id:
        submission_ids = submission_ids.where(SwmsSubmission.contractor_id == contractor_id)
    if swms_job_id:
        submission_ids = submission_ids.where(SwmsSubmission.swms_job_id == swms_job_id)
    if job_site_id:
        submission_ids = submission_ids.where(
            SwmsSubmission.swms_job_id.in_(
                select(SwmsJob.id).where(SwmsJob.job_site_id == job_site_id)
            )
        )

    clauses = [SwmsAuditLog.record_id.in_(submission_ids)]
    if swms_job_id and not contractor_id:
        clauses.append(SwmsAuditLog.record_id == swms_job_id)
        clauses.append(
            SwmsAuditLog.record_id.in_(
                select(EmailCampaign.id).where(EmailCampaign.swms_job_id == swms_job_id)
            )
        )
    if contractor_id and not swms_job_id:
        clauses.append(SwmsAuditLog.record_id == contractor_id)
    return or_(*clauses)


def _payload_mentions(payload: dict[str, Any], key: str, value: UUID) -> bool:
    """True if payload[key] or payload[key + 's'] names the id."""
    wanted = str(value)
    return payload.get(key) == wanted or wanted in (payload.get(f"{key}s") or [])


def notification_in_scope(
    audit: NotificationAudit,
    contractor_id: UUID | None = None,
    swms_job_id: UUID | None = None,
) -> bool:
    """
    Whether a notification audit concerns the given contractor and/or job.

    Matches on the contractor_id(s) and swms_job_id(s) the actions record
    in their payloads. Audits that name neither (compliance checks,
    reports, failures) only show on unscoped timelines.
    """
    payload = audit.payload or {}
    if swms_job_id and not _payload_mentions(payload, "swms_job_id", swms_job_id):
        return False
    if contractor_id and not _payload_mentions(payload, "contractor_id", contractor_id):
        return False
    return True


def fetch_timeline(
    db: Session,
    *,
    job_site_id: UUID | None = None,
    contractor_id: UUID | None = None,
    swms_job_id: UUID | None = None,
    days_back: int | None = None,
    now: datetime | None = None,
) -> list[TimelineEvent]:
    """Query the three sources within the window and merge them."""
    now = now or utcnow()
    since = now - timedelta(days=days_back or settings.TIMELINE_DAYS_BACK)

    submissions_query = (
        select(SwmsSubmission)
        .options(joinedload(SwmsSubmission.contractor), joinedload(SwmsSubmission.swms_job))
        .where(
            or_(
                SwmsSubmission.created_at >= since,
                SwmsSubmission.submitted_at >= since,
                SwmsSubmission.reviewed_at >= since,
            )
        )
        .order_by(SwmsSubmission.created_at.desc(), SwmsSubmission.id)
    )
    if job_site_id:
        submissions_query = submissions_query.join(SwmsSubmission.swms_job).where(
            SwmsJob.job_site_id == job_site_id
        )
    if contractor_id:
        submissions_query = submissions_query.where(SwmsSubmission.contractor_id == contractor_id)
    if swms_job_id:
        submissions_query = submissions_query.where(SwmsSubmission.swms_job_id == swms_job_id)

    audit_query = (
        select(SwmsAuditLog)
        .where(SwmsAuditLog.changed_at >= since)
        .order_by(SwmsAuditLog.changed_at.desc(), SwmsAuditLog.id)
        .limit(settings.TIMELINE_AUDIT_LIMIT)
    )
    if contractor_id or swms_job_id:
        audit_query = audit_query.where(
            _change_log_subject_filter(contractor_id, swms_job_id, job_site_id)
        )
    elif job_site_id:
        audit_query = audit_query.where(_change_log_site_filter(job_site_id))

    notification_query = (
        select(NotificationAudit)
        .where(
            NotificationAudit.kind.like("swms\\_%", escape="\\"),
            NotificationAudit.created_at >= since,
        )
        .order_by(NotificationAudit.created_at.desc(), NotificationAudit.id.desc())
    )
    if job_site_id:
        notification_query = notification_query.where(
            NotificationAudit.payload["job_site_id"].as_string() == str(job_site_id)
        )

    # Contractor/job scope is matched on payload ids in Python, ahead of the limit
    if contractor_id or swms_job_id:
        audits: Iterable[NotificationAudit] = (
            audit
            for audit in db.scalars(notification_query)
            if notification_in_scope(audit, contractor_id, swms_job_id)
        )
    else:
        audits = db.scalars(notification_query.limit(settings.TIMELINE_NOTIFICATION_LIMIT))
    notifications = list(islice(audits, settings.TIMELINE_NOTIFICATION_LIMIT))

    submissions = db.scalars(submissions_query).unique().all()
    since_utc = as_utc(since)
    recent = [
        event
        for event in submission_events(submissions)
        if as_utc(datetime.fromisoformat(event.timestamp)) >= since_utc
    ]
    return merge_events(
        recent,
        change_log_events(db.scalars(audit_query).all()),
        notification_events(notifications),
    )


def list_audit_trail(
    db: Session,
    *,
    job_site_id: UUID | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = 50,
) -> list[tuple[SwmsAuditLog, str | None]]:
    """Change-log rows, newest first, each with the email of whoever made the change."""
    query = (
        select(SwmsAuditLog, User.email)
        .outerjoin(User, User.id == SwmsAuditLog.changed_by)
        .order_by(SwmsAuditLog.changed_at.desc(), SwmsAuditLog.id)
        .limit(limit)
    )
    if start_date:
        query = query.where(SwmsAuditLog.changed_at >= start_date)
    if end_date:
        query = query.where(SwmsAuditLog.changed_at <= end_date)
    if job_site_id:
        query = query.where(_change_log_site_filter(job_site_id))
    return [(entry, email) for entry, email in db.execute(query).all()]
