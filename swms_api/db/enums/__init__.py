"""Enum definitions for application constants."""

from swms_api.db.enums.audit import AuditResult, ChangeLogAction, NotificationAuditKind
from swms_api.db.enums.campaigns import DeliveryStatus, SwmsCampaignStatus, SwmsCampaignType
from swms_api.db.enums.swms import (
    AWAITING_REVIEW_STATUSES,
    REMINDER_STATUSES,
    JobSiteStatus,
    SwmsJobStatus,
    SwmsSubmissionStatus,
)

__all__ = [
    "AWAITING_REVIEW_STATUSES",
    "AuditResult",
    "ChangeLogAction",
    "DeliveryStatus",
    "JobSiteStatus",
    "NotificationAuditKind",
    "REMINDER_STATUSES",
    "SwmsCampaignStatus",
    "SwmsCampaignType",
    "SwmsJobStatus",
    "SwmsSubmissionStatus",
]
