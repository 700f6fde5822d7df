"""Document model for uploaded files and their vectorization status."""

import enum
import uuid

from sqlalchemy import Enum, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from docassist.models.base import TenantScopedModel


class DocumentStatus(enum.Enum):
    PENDING = "pending"
    READY = "ready"
    ERROR = "error"


class Document(TenantScopedModel):
    __tablename__ = "documents"

    project_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(
        Text, nullable=False, default="", comment="Extracted raw text."
    )
    size: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Upload size in bytes."
    )
    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus, native_enum=False),
        nullable=False,
        default=DocumentStatus.PENDING,
    )

    __table_args__ = (
        Index("ix_documents_tenant_project", "tenant_id", "project_id"),
        Index("ix_documents_tenant_status", "tenant_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, filename='{self.filename}', status='{self.status.value}')>"
