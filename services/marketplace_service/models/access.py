"""Operator models: riders and the position/permission grants behind scope filtering."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship


class Rider(Base):
    """Delivery riders."""

    __tablename__ = "marketplace_riders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )


class Permission(Base):
    """A grant of ``actions`` on ``resource``.

    ``scope`` is NULL for global access, otherwise
    ``{"cities": [...], "states": [...], "countries": [...]}``.
    """

    __tablename__ = "marketplace_permissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    resource: Mapped[str] = mapped_column(String(50), index=True, nullable=False)
    actions: Mapped[list] = mapped_column(JSON, default=list)
    scope: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)


class Position(Base):
    """A named bundle of permissions (e.g. "Lagos operations lead")."""

    __tablename__ = "marketplace_positions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    permissions = relationship(
        "PositionPermission", back_populates="position", cascade="all, delete-orphan"
    )


class PositionPermission(Base):
    __tablename__ = "marketplace_position_permissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    position_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("marketplace_positions.id", ondelete="CASCADE"),
        nullable=False,
    )
    permission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("marketplace_permissions.id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("position_id", "permission_id", name="unique_position_permission"),
    )

    position = relationship("Position", back_populates="permissions")
    permission = relationship("Permission")


class OperatorPosition(Base):
    """Positions held by an operator (sub-admin)."""

    __tablename__ = "marketplace_operator_positions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    position_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("marketplace_positions.id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "position_id", name="unique_operator_position"),
    )


class SubAdminProfile(Base):
    """Profile-level default geography. Always narrows permission grants."""

    __tablename__ = "marketplace_sub_admin_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )
    allowed_cities: Mapped[list] = mapped_column(JSON, default=list)
    allowed_states: Mapped[list] = mapped_column(JSON, default=list)
    allowed_countries: Mapped[list] = mapped_column(JSON, default=list)
