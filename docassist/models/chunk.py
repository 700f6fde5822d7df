"""Chunk model for storing embedded document fragments."""

import uuid
from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import DateTime, Index, Integer, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column
from uuid_extensions import uuid7

from docassist.models.base import Base, utcnow
from docassist.settings import settings


class Chunk(Base):
    """
    One embedded fragment of a document. Rows are immutable; they are only
    ever removed in bulk by document id and tenant.

    No foreign key to documents: chunk cleanup is best-effort and never
    blocks deleting the document row.
    """

    __tablename__ = "chunks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid7)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    document_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[list[float]] = mapped_column(
        Vector(settings.EMBEDDING_DIMENSIONS), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (Index("ix_chunks_tenant_document", "tenant_id", "document_id"),)

    def __repr__(self) -> str:
        return (
            f"<Chunk(id={self.id}, tenant_id={self.tenant_id}, "
            f"document_id={self.document_id}, index={self.chunk_index})>"
        )
