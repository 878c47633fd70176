"""Compliance status engine.

Pure functions over already-loaded rows: no queries, no clock reads (the
caller passes `now`), no hidden state. Same inputs, same outputs.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Protocol
from uuid import UUID

from swms_api.db.enums import AWAITING_REVIEW_STATUSES, SwmsSubmissionStatus

# Completion at or above this percentage marks a job's campaign as completed
CAMPAIGN_COMPLETED_PERCENTAGE = 90.0

OVERDUE = "overdue"


class SubmissionLike(Protocol):
    contractor_id: UUID
    status: str
    created_at: datetime


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def compliance_rate(approved_submissions: int, active_jobs: int) -> int:
    """
    Approved submissions per active job, as a rounded percentage.

    No active jobs means nothing is outstanding, which counts as fully
    compliant (100) rather than undefined.
    """
    if active_jobs <= 0:
        return 100
    return round(approved_submissions / active_jobs * 100)


def overdue_cutoff(now: datetime, threshold: timedelta) -> datetime:
    """Submissions created before this instant and still awaiting review are overdue."""
    return as_utc(now) - threshold


def is_overdue(submission: SubmissionLike, now: datetime, threshold: timedelta) -> bool:
    return (
        submission.status in AWAITING_REVIEW_STATUSES
        and as_utc(submission.created_at) < overdue_cutoff(now, threshold)
    )


def effective_submission_state(
    submission: SubmissionLike, now: datetime, threshold: timedelta
) -> str:
    """Stored status, except stale awaiting-review submissions read as overdue."""
    if is_overdue(submission, now, threshold):
        return OVERDUE
    return submission.status


@dataclass(frozen=True)
class JobCompletionMetrics:
    """Per-job progress derived from its submissions."""

    job_id: UUID
    contractor_count: int
    submitted_count: int
    pending_count: int
    overdue_count: int
    completion_percentage: float
    last_activity: datetime | None
    campaign_status: str  # 'completed' | 'active' | 'pending'

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def completion_percentage(submitted: int, total_contractors: int) -> float:
    if total_contractors <= 0:
        return 0.0
    return submitted / total_contractors * 100


def job_completion_metrics(
    job_id: UUID,
    submissions: Iterable[SubmissionLike],
    now: datetime,
    threshold: timedelta,
) -> JobCompletionMetrics:
    """
    Summarise one job's submissions.

    submitted_count counts approved submissions: a document only counts
    toward completion once a reviewer has accepted it.
    """
    rows = list(submissions)
    contractors = {s.contractor_id for s in rows if s.contractor_id is not None}
    submitted = sum(1 for s in rows if s.status == SwmsSubmissionStatus.APPROVED.value)
    pending = sum(1 for s in rows if s.status in AWAITING_REVIEW_STATUSES)
    overdue = sum(1 for s in rows if is_overdue(s, now, threshold))
    percentage = completion_percentage(submitted, len(contractors))
    last_activity = max((as_utc(s.created_at) for s in rows), default=None)

    if percentage >= CAMPAIGN_COMPLETED_PERCENTAGE:
        campaign_status = "completed"
    elif pending > 0:
        campaign_status = "active"
    else:
        campaign_status = "pending"

    return JobCompletionMetrics(
        job_id=job_id,
        contractor_count=len(contractors),
        submitted_count=submitted,
        pending_count=pending,
        overdue_count=overdue,
        completion_percentage=percentage,
        last_activity=last_activity,
        campaign_status=campaign_status,
    )


@dataclass(frozen=True)
class ComplianceSnapshot:
    """The five system-wide counts and the rate derived from them."""

    active_jobs: int
    approved_submissions: int
    pending_submissions: int
    overdue_submissions: int
    active_campaigns: int

    @property
    def compliance_rate(self) -> int:
        return compliance_rate(self.approved_submissions, self.active_jobs)

    def as_metrics(self) -> dict[str, int]:
        """Key names used by the admin console."""
        return {
            "activeJobs": self.active_jobs,
            "approvedSubmissions": self.approved_submissions,
            "pendingSubmissions": self.pending_submissions,
            "overdueSubmissions": self.overdue_submissions,
            "activeCampaigns": self.active_campaigns,
        }
