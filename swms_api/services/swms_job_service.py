"""SWMS job dashboard metrics."""

from collections import defaultdict
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from swms_api.core.config import settings
from swms_api.db.models import SwmsJob, SwmsSubmission
from swms_api.db.models.common import utcnow
from swms_api.services.compliance_engine import JobCompletionMetrics, job_completion_metrics


def list_job_metrics(
    db: Session,
    job_site_id: UUID | None = None,
    status: str | None = None,
    now: datetime | None = None,
    threshold: timedelta | None = None,
) -> list[tuple[SwmsJob, JobCompletionMetrics]]:
    """
    Completion metrics for each job, newest job first.

    Two queries (jobs, then their submissions) regardless of job count.
    """
    now = now or utcnow()
    threshold = threshold or timedelta(hours=settings.OVERDUE_THRESHOLD_HOURS)

    jobs_query = select(SwmsJob).order_by(SwmsJob.created_at.desc(), SwmsJob.id)
    if job_site_id:
        jobs_query = jobs_query.where(SwmsJob.job_site_id == job_site_id)
    if status:
        jobs_query = jobs_query.where(SwmsJob.status == status)
    jobs = db.scalars(jobs_query).all()
    if not jobs:
        return []

    by_job: dict[UUID, list[SwmsSubmission]] = defaultdict(list)
    submissions = db.scalars(
        select(SwmsSubmission).where(SwmsSubmission.swms_job_id.in_([job.id for job in jobs]))
    ).all()
    for submission in submissions:
        by_job[submission.swms_job_id].append(submission)

    return [
        (job, job_completion_metrics(job.id, by_job[job.id], now, threshold))
        for job in jobs
    ]
