"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from swms_api.db.base import Base
from swms_api.db.models.common import utcnow
from swms_api.db.types import JSONDocument


class NotificationAudit(Base):
    """
    Append-only record of every campaign action.

    The sole source of "what happened and why" beyond the mutated rows.
    Rows are never updated or deleted.
    """

    __tablename__ = "notification_audits"
    __table_args__ = (
        Index("idx_notification_audits_kind_created", "kind", "created_at"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    kind: Mapped[str] = mapped_column(String(100), nullable=False)  # NotificationAuditKind
    payload: Mapped[dict | None] = mapped_column(JSONDocument, nullable=True)
    result: Mapped[str] = mapped_column(String(20), nullable=False)  # 'success' | 'failure'
    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )


class SwmsAuditLog(Base):
    """
    Row-level change log for SWMS tables.

    One row per changed record, with before/after values for the fields
    that changed.
    """

    __tablename__ = "swms_audit_log"
    __table_args__ = (
        Index("idx_swms_audit_log_changed_at", "changed_at"),
        Index("idx_swms_audit_log_record", "record_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    table_name: Mapped[str] = mapped_column(String(100), nullable=False)
    record_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    action_type: Mapped[str] = mapped_column(
        String(20), nullable=False
    )  # 'insert' | 'update' | 'delete' | 'status_update'
    old_values: Mapped[dict | None] = mapped_column(JSONDocument, nullable=True)
    new_values: Mapped[dict | None] = mapped_column(JSONDocument, nullable=True)
    changed_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    changed_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
