"""Audit and change-log enums."""

from enum import Enum


class NotificationAuditKind(str, Enum):
    """Kinds written to notification_audits by campaign actions."""

    REMINDER_MANUAL = "swms_reminder_manual"
    BULK_APPROVAL = "swms_bulk_approval"
    COMPLIANCE_CHECK = "swms_compliance_check"
    URGENT_NOTIFICATION = "swms_urgent_notification"
    WEEKLY_CAMPAIGN = "swms_weekly_campaign"
    COMPLIANCE_REPORT = "swms_compliance_report"
    BROADCAST_UPDATE = "swms_broadcast_update"
    CAMPAIGN_CONTROL = "swms_campaign_control"
    EMAIL_AUTOMATION = "swms_email_automation"
    EMAIL_TRACKING = "swms_email_tracking"


class AuditResult(str, Enum):
    """Outcome recorded on a notification audit."""

    SUCCESS = "success"
    FAILURE = "failure"


class ChangeLogAction(str, Enum):
    """Row-level change recorded in swms_audit_log."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    STATUS_UPDATE = "status_update"
