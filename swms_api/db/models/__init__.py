"""SQLAlchemy ORM models."""

from swms_api.db.models.audit import NotificationAudit, SwmsAuditLog
from swms_api.db.models.auth import User
from swms_api.db.models.campaigns import EmailCampaign, EmailSend
from swms_api.db.models.swms import Contractor, JobSite, SwmsJob, SwmsSubmission

__all__ = [
    "Contractor",
    "EmailCampaign",
    "EmailSend",
    "JobSite",
    "NotificationAudit",
    "SwmsAuditLog",
    "SwmsJob",
    "SwmsSubmission",
    "User",
]
