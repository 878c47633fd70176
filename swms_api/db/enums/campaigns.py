"""Campaign-related enums."""

from enum import Enum


class SwmsCampaignStatus(str, Enum):
    """Status of a SWMS email campaign."""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class SwmsCampaignType(str, Enum):
    """
    Known campaign type tags.

    The column is free-form; these are the tags the workflow itself writes.
    """

    MANUAL_REMINDER = "manual_reminder"
    URGENT_SAFETY_ALERT = "urgent_safety_alert"
    WEEKLY_REMINDER = "weekly_reminder"
    SITE_BROADCAST = "site_broadcast"


class DeliveryStatus(str, Enum):
    """Delivery status of a single email send."""

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    BOUNCED = "bounced"
