"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from swms_api.db.base import Base
from swms_api.db.enums import JobSiteStatus, SwmsJobStatus, SwmsSubmissionStatus
from swms_api.db.models.common import utcnow
from swms_api.db.types import EmailAddress

if TYPE_CHECKING:
    from swms_api.db.models import User


class JobSite(Base):
    """A physical construction site. Owns the SWMS jobs run on it."""

    __tablename__ = "job_sites"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=JobSiteStatus.ACTIVE.value, nullable=False
    )  # 'active' | 'inactive' | 'completed'
    check_in_radius_meters: Mapped[int] = mapped_column(Integer, default=100, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    swms_jobs: Mapped[list["SwmsJob"]] = relationship(back_populates="job_site")


class SwmsJob(Base):
    """
    A work package on a job site that requires a Safe Work Method Statement.

    Status transitions are admin-driven; nothing here enforces an order
    beyond the enum.
    """

    __tablename__ = "swms_jobs"
    __table_args__ = (
        Index("idx_swms_jobs_site_status", "job_site_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    job_site_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("job_sites.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=SwmsJobStatus.PLANNED.value, nullable=False
    )  # 'planned' | 'active' | 'completed' | 'cancelled'

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    job_site: Mapped["JobSite"] = relationship(back_populates="swms_jobs")
    submissions: Mapped[list["SwmsSubmission"]] = relationship(back_populates="swms_job")


class Contractor(Base):
    """An external company that submits SWMS documents."""

    __tablename__ = "contractors"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    abn: Mapped[str | None] = mapped_column(String(20), nullable=True)
    contact_email: Mapped[str | None] = mapped_column(EmailAddress, nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    submissions: Mapped[list["SwmsSubmission"]] = relationship(back_populates="contractor")


class SwmsSubmission(Base):
    """
    A contractor's response to a SWMS job.

    Always references exactly one job and one contractor. Status only moves
    forward in practice (nothing moves approved back to pending).
    """

    __tablename__ = "swms_submissions"
    __table_args__ = (
        Index("idx_swms_submissions_job_status", "swms_job_id", "status"),
        Index("idx_swms_submissions_contractor", "contractor_id"),
        Index("idx_swms_submissions_status_created", "status", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    swms_job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("swms_jobs.id", ondelete="CASCADE"), nullable=False
    )
    contractor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contractors.id", ondelete="CASCADE"), nullable=False
    )
    worker_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    document_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), default=SwmsSubmissionStatus.PENDING.value, nullable=False
    )  # 'pending' | 'submitted' | 'under_review' | 'approved' | 'rejected'
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Review
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )

    swms_job: Mapped["SwmsJob"] = relationship(back_populates="submissions")
    contractor: Mapped["Contractor"] = relationship(back_populates="submissions")
    reviewer: Mapped["User | None"] = relationship()
