"""Per-tenant analytics snapshot, maintained incrementally."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from docassist.models.base import TenantScopedModel, utcnow

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONList = JSON().with_variant(JSONB(), "postgresql")


class AnalyticsSnapshot(TenantScopedModel):
    """
    Denormalized rollup of a tenant's usage. Exactly one row per tenant;
    the unique constraint on tenant_id is what makes `ensure` safe under
    concurrent first access.

    Every update is a read-modify-write guarded by `version`, so two
    concurrent events for the same tenant cannot silently overwrite each
    other; the loser gets a StaleDataError and re-applies its change.
    """

    __tablename__ = "analytics_snapshots"

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    total_documents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_messages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_conversations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_projects: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    documents_ready: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    documents_processing: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    documents_error: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # [{project_id, project_name, document_count, vectorized_count}]
    documents_by_project: Mapped[list[dict]] = mapped_column(
        JSONList, nullable=False, default=list
    )
    # [{date: "YYYY-MM-DD", count}] sorted ascending
    messages_by_day: Mapped[list[dict]] = mapped_column(
        JSONList, nullable=False, default=list
    )
    recent_documents: Mapped[list[dict]] = mapped_column(
        JSONList, nullable=False, default=list
    )
    recent_conversations: Mapped[list[dict]] = mapped_column(
        JSONList, nullable=False, default=list
    )

    processing_rate: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    avg_messages_per_conversation: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    avg_documents_per_project: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", name="uq_analytics_snapshots_tenant"),
    )
    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<AnalyticsSnapshot(tenant_id={self.tenant_id}, version={self.version})>"
