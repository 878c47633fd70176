"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from swms_api.db.base import Base
from swms_api.db.enums import DeliveryStatus, SwmsCampaignStatus
from swms_api.db.models.common import utcnow
from swms_api.db.types import EmailAddress

if TYPE_CHECKING:
    from swms_api.db.models import Contractor, SwmsJob, User


class EmailCampaign(Base):
    """
    A batch of reminder/notification sends.

    Tied to one SWMS job, or to none for site-wide alerts and broadcasts.
    """

    __tablename__ = "swms_email_campaigns"
    __table_args__ = (
        Index("idx_swms_campaigns_status", "status"),
        Index("idx_swms_campaigns_job", "swms_job_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    swms_job_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("swms_jobs.id", ondelete="SET NULL"), nullable=True
    )

    # Free-form tag: manual_reminder, urgent_safety_alert, weekly_reminder, site_broadcast, ...
    campaign_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=SwmsCampaignStatus.ACTIVE.value, nullable=False
    )  # 'active' | 'paused' | 'completed'
    scheduled_date: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    # Body of urgent alerts and broadcasts (length-bounded at the API boundary)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    swms_job: Mapped["SwmsJob | None"] = relationship()
    creator: Mapped["User | None"] = relationship()
    sends: Mapped[list["EmailSend"]] = relationship(
        back_populates="campaign", cascade="all, delete-orphan"
    )


class EmailSend(Base):
    """
    One (campaign, contractor) delivery.

    Carries the portal token that lets the contractor open the submission
    portal without a full login, until token_expires_at.
    """

    __tablename__ = "swms_email_sends"
    __table_args__ = (
        Index("idx_swms_sends_campaign", "campaign_id"),
        Index("idx_swms_sends_contractor", "contractor_id"),
        Index("idx_swms_sends_portal_token", "portal_token", unique=True),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    campaign_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("swms_email_campaigns.id", ondelete="CASCADE"), nullable=False
    )
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contractors.id", ondelete="CASCADE"), nullable=False
    )
    email_address: Mapped[str] = mapped_column(EmailAddress, nullable=False)

    portal_token: Mapped[str] = mapped_column(String(64), nullable=False)
    token_expires_at: Mapped[datetime] = mapped_column(nullable=False)

    delivery_status: Mapped[str] = mapped_column(
        String(20), default=DeliveryStatus.PENDING.value, nullable=False
    )  # 'pending' | 'sent' | 'delivered' | 'failed' | 'bounced'
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Engagement
    opened_at: Mapped[datetime | None] = mapped_column(nullable=True)
    clicked_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )

    campaign: Mapped["EmailCampaign"] = relationship(back_populates="sends")
    contractor: Mapped["Contractor"] = relationship()
