"""Schemas for the compliance timeline, audit trail and job metrics."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

TimelineEventType = Literal["submission", "status_change", "audit", "email", "reminder"]
TimelineEventStatus = Literal["success", "pending", "failed", "warning"]
TimelineCategory = Literal["all", "submissions", "emails", "audits"]


class TimelineContractor(BaseModel):
    id: UUID
    name: str


class TimelineEvent(BaseModel):
    id: str
    type: TimelineEventType
    title: str
    description: str
    timestamp: str  # ISO 8601, UTC
    contractor: TimelineContractor | None = None
    status: TimelineEventStatus | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TimelineResponse(BaseModel):
    success: bool = True
    category: TimelineCategory
    timeline: list[TimelineEvent]


class AuditTrailEntry(BaseModel):
    id: UUID
    table_name: str
    record_id: UUID
    action_type: str
    old_values: dict[str, Any] | None
    new_values: dict[str, Any] | None
    changed_by: UUID | None
    changed_by_email: str | None = None
    changed_at: datetime

    model_config = {"from_attributes": True}


class AuditTrailResponse(BaseModel):
    success: bool = True
    audit_trail: list[AuditTrailEntry]


class JobMetricsRead(BaseModel):
    job_id: UUID
    job_name: str
    job_site_id: UUID
    status: str
    contractor_count: int
    submitted_count: int
    pending_count: int
    overdue_count: int
    completion_percentage: float
    last_activity: datetime | None
    campaign_status: str


class JobMetricsResponse(BaseModel):
    items: list[JobMetricsRead]


class PortalSubmissionRead(BaseModel):
    """A contractor's own submission, as shown back to them in the portal."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_name: str | None
    status: str
    submitted_at: datetime | None
    reviewed_at: datetime | None
    notes: str | None


class PortalSubmissionCreate(BaseModel):
    """A document submitted through a portal link. The file itself is stored elsewhere."""
    document_name: str = Field(min_length=1, max_length=255)
    file_url: str | None = Field(default=None, max_length=2048)

    @field_validator("document_name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class PortalSendRead(BaseModel):
    """What a contractor sees when opening a portal link."""
    campaign_id: UUID
    campaign_type: str
    contractor_id: UUID
    swms_job_id: UUID | None
    swms_job_name: str | None
    message: str | None
    token_expires_at: datetime
    submissions: list[PortalSubmissionRead] = Field(default_factory=list)
