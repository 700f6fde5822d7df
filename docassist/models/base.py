"""Declarative base and shared columns for all tables."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from uuid_extensions import uuid7


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base for all models."""

    pass


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to a model.

    Values are set client-side so they are readable after commit without
    a refresh round-trip on an async session.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        comment="The time the record was created.",
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        comment="The time the record was last updated.",
    )


class BaseModel(Base, TimestampMixin):
    """
    Base model for all other models to inherit from.
    It includes a UUIDv7 primary key and timestamps.
    """

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid7,
        comment="The unique identifier for the record.",
    )


class TenantScopedModel(BaseModel):
    """
    Base for every table holding tenant data. The tenant column is
    mandatory and indexed because every query filters on it.
    """

    __abstract__ = True

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, nullable=False, index=True, comment="Owning organization."
    )
