"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from swms_api.db.base import Base
from swms_api.db.models.common import utcnow
from swms_api.db.types import EmailAddress


class User(Base):
    """
    An administrator of the compliance console.

    Sessions are issued elsewhere; this table is only consulted to check
    that a session's subject still exists, is active and has not been revoked.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(EmailAddress, unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Bumped to revoke every outstanding session
    token_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        default=utcnow, server_default=func.now(), nullable=False
    )
