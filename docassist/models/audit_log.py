"""Audit log of user-initiated actions."""

import enum
import uuid

from sqlalchemy import JSON, Enum, Index, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from docassist.models.base import TenantScopedModel


class AuditAction(enum.Enum):
    UPLOAD_DOCUMENT = "UPLOAD_DOCUMENT"
    UPDATE_DOCUMENT = "UPDATE_DOCUMENT"
    DELETE_DOCUMENT = "DELETE_DOCUMENT"
    DELETE_PROJECT = "DELETE_PROJECT"
    CREATE_CONVERSATION = "CREATE_CONVERSATION"
    DELETE_CONVERSATION = "DELETE_CONVERSATION"


class AuditLog(TenantScopedModel):
    __tablename__ = "audit_logs"

    actor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    action: Mapped[AuditAction] = mapped_column(
        Enum(AuditAction, native_enum=False), nullable=False, index=True
    )
    target: Mapped[str] = mapped_column(String(500), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    details: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict
    )

    __table_args__ = (Index("ix_audit_logs_tenant_created", "tenant_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<AuditLog(action='{self.action.value}', target='{self.target}')>"
