"""SWMS job, submission and site enums."""

from enum import Enum


class JobSiteStatus(str, Enum):
    """Status of a job site."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    COMPLETED = "completed"


class SwmsJobStatus(str, Enum):
    """Status of a SWMS job. Transitions are admin-driven."""

    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SwmsSubmissionStatus(str, Enum):
    """Status of a contractor's SWMS submission."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"


# Submissions a reviewer still has to act on
AWAITING_REVIEW_STATUSES = (
    SwmsSubmissionStatus.SUBMITTED.value,
    SwmsSubmissionStatus.UNDER_REVIEW.value,
)

# Submissions that still need a reminder
REMINDER_STATUSES = (
    SwmsSubmissionStatus.PENDING.value,
    SwmsSubmissionStatus.SUBMITTED.value,
)
