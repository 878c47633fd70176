"""SWMS campaign action schemas.

Each action is a command model with its own typed parameters. The action tag
selects the model; the model validates the rest of the request body.
"""
from enum import Enum
from typing import Any, ClassVar, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from swms_api.core.config import settings


class CampaignAction(str, Enum):
    """Actions accepted by the campaign command endpoint."""

    SEND_REMINDER = "send-reminder"
    BULK_APPROVE = "bulk-approve"
    COMPLIANCE_CHECK = "compliance-check"
    URGENT_NOTIFICATION = "urgent-notification"
    WEEKLY_CAMPAIGN = "weekly-campaign"
    GENERATE_REPORT = "generate-report"
    BROADCAST_UPDATE = "broadcast-update"
    PAUSE_CAMPAIGNS = "pause-campaigns"

    @classmethod
    def has_value(cls, value: str) -> bool:
        return value in cls._value2member_map_


def require_bounded_text(value: Any, missing_message: str) -> str:
    """Strip and validate a required free-text field."""
    if value is None:
        raise ValueError(missing_message)
    if not isinstance(value, str):
        raise ValueError(f"{missing_message} (expected text)")
    cleaned = value.strip()
    if not cleaned:
        raise ValueError(missing_message)
    if len(cleaned) > settings.MAX_FREE_TEXT_LENGTH:
        raise ValueError(
            f"Text must be at most {settings.MAX_FREE_TEXT_LENGTH} characters"
        )
    return cleaned


# =============================================================================
# Parameters
# =============================================================================

class NoParameters(BaseModel):
    """Actions that take no parameters ignore whatever is sent."""
    model_config = ConfigDict(extra="ignore")


class BulkApproveParameters(BaseModel):
    """Free-text justification recorded against every approved submission."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    approval_criteria: str = Field(
        default=None, alias="approvalCriteria", validate_default=True
    )

    @field_validator("approval_criteria", mode="before")
    @classmethod
    def _require_criteria(cls, value: Any) -> str:
        return require_bounded_text(value, "Approval criteria is required for bulk approval")


class UrgentNotificationParameters(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    urgent_message: str = Field(default=None, alias="urgentMessage", validate_default=True)

    @field_validator("urgent_message", mode="before")
    @classmethod
    def _require_message(cls, value: Any) -> str:
        return require_bounded_text(value, "Urgent message is required")


class BroadcastUpdateParameters(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    broadcast_message: str = Field(
        default=None, alias="broadcastMessage", validate_default=True
    )

    @field_validator("broadcast_message", mode="before")
    @classmethod
    def _require_message(cls, value: Any) -> str:
        return require_bounded_text(value, "Broadcast message is required")


class GenerateReportParameters(BaseModel):
    model_config = ConfigDict(extra="ignore")

    format: Literal["csv", "pdf"] = "csv"
    include_audit_trail: bool = True


# =============================================================================
# Commands
# =============================================================================

class CampaignCommand(BaseModel):
    """Fields shared by every command: the optional scope of the action."""
    model_config = ConfigDict(extra="ignore")

    action: ClassVar[CampaignAction]

    job_site_id: UUID | None = None
    contractor_id: UUID | None = None
    swms_job_id: UUID | None = None


class SendReminderCommand(CampaignCommand):
    action = CampaignAction.SEND_REMINDER
    parameters: NoParameters = Field(default_factory=NoParameters)


class BulkApproveCommand(CampaignCommand):
    action = CampaignAction.BULK_APPROVE
    parameters: BulkApproveParameters = Field(default_factory=BulkApproveParameters)


class ComplianceCheckCommand(CampaignCommand):
    action = CampaignAction.COMPLIANCE_CHECK
    parameters: NoParameters = Field(default_factory=NoParameters)


class UrgentNotificationCommand(CampaignCommand):
    action = CampaignAction.URGENT_NOTIFICATION
    parameters: UrgentNotificationParameters = Field(
        default_factory=UrgentNotificationParameters
    )


class WeeklyCampaignCommand(CampaignCommand):
    action = CampaignAction.WEEKLY_CAMPAIGN
    parameters: NoParameters = Field(default_factory=NoParameters)


class GenerateReportCommand(CampaignCommand):
    action = CampaignAction.GENERATE_REPORT
    parameters: GenerateReportParameters = Field(default_factory=GenerateReportParameters)


class BroadcastUpdateCommand(CampaignCommand):
    action = CampaignAction.BROADCAST_UPDATE
    parameters: BroadcastUpdateParameters = Field(default_factory=BroadcastUpdateParameters)


class PauseCampaignsCommand(CampaignCommand):
    action = CampaignAction.PAUSE_CAMPAIGNS
    parameters: NoParameters = Field(default_factory=NoParameters)


AnyCampaignCommand = Union[
    SendReminderCommand,
    BulkApproveCommand,
    ComplianceCheckCommand,
    UrgentNotificationCommand,
    WeeklyCampaignCommand,
    GenerateReportCommand,
    BroadcastUpdateCommand,
    PauseCampaignsCommand,
]

COMMAND_MODELS: dict[CampaignAction, type[CampaignCommand]] = {
    model.action: model
    for model in AnyCampaignCommand.__args__  # type: ignore[attr-defined]
}


# =============================================================================
# Request / Response
# =============================================================================

class CampaignActionRequest(BaseModel):
    """Wire shape of the command endpoint (documentation only; parsing is per action)."""
    action: str
    job_site_id: UUID | None = None
    contractor_id: UUID | None = None
    swms_job_id: UUID | None = None
    parameters: dict[str, Any] | None = None


class CampaignActionResponse(BaseModel):
    """Envelope returned for every command, success or failure."""
    success: bool
    message: str | None = None
    data: dict[str, Any] | None = None
    error: str | None = None
