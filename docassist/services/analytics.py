"""
Incrementally maintained per-tenant analytics.

Each business event applies a small delta to the tenant's snapshot row
instead of recounting the source tables. Updates are read-modify-write
cycles guarded by the snapshot's version column; a writer that loses a
race re-reads and re-applies its delta.
"""

import copy
import math
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Optional, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from docassist.config.db import tenant_session
from docassist.models.analytics import AnalyticsSnapshot
from docassist.models.base import utcnow
from docassist.models.conversation import Conversation, Message
from docassist.models.document import Document, DocumentStatus
from docassist.utils.logging_config import logger

RECENT_DOCUMENT_LIMIT = 10
RECENT_CONVERSATION_LIMIT = 10
MESSAGE_DAY_LIMIT = 14
PROJECT_ROLLUP_LIMIT = 50

UNASSIGNED_KEY = "unassigned"
UNASSIGNED_NAME = "Unassigned"

T = TypeVar("T")


class AnalyticsConflictError(RuntimeError):
    """The snapshot kept changing underneath an update; gave up retrying."""


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def compute_derived(snapshot: AnalyticsSnapshot) -> None:
    """Recompute the ratio fields from the counters, in place."""
    snapshot.processing_rate = (
        _round_half_up(snapshot.documents_ready / snapshot.total_documents * 100)
        if snapshot.total_documents > 0
        else 0
    )
    snapshot.avg_messages_per_conversation = (
        _round_half_up(snapshot.total_messages / snapshot.total_conversations)
        if snapshot.total_conversations > 0
        else 0
    )
    snapshot.avg_documents_per_project = (
        _round_half_up(snapshot.total_documents / snapshot.total_projects)
        if snapshot.total_projects > 0
        else 0
    )


def _project_key(project_id: uuid.UUID | str | None) -> str:
    return str(project_id) if project_id else UNASSIGNED_KEY


def _upsert_project(
    projects: list[dict], project_id: uuid.UUID | str | None, project_name: Optional[str]
) -> dict:
    key = _project_key(project_id)
    for entry in projects:
        if entry["project_id"] == key:
            return entry
    entry = {
        "project_id": key,
        "project_name": project_name or UNASSIGNED_NAME,
        "document_count": 0,
        "vectorized_count": 0,
    }
    projects.append(entry)
    return entry


def _bound_projects(projects: list[dict], keep: dict) -> list[dict]:
    # Drop the smallest projects first, never the one just touched.
    while len(projects) > PROJECT_ROLLUP_LIMIT:
        candidates = [entry for entry in projects if entry is not keep]
        smallest = min(candidates, key=lambda entry: entry["document_count"])
        projects.remove(smallest)
    return projects


def _upsert_day(days: list[dict], date: str) -> dict:
    for entry in days:
        if entry["date"] == date:
            return entry
    entry = {"date": date, "count": 0}
    days.append(entry)
    return entry


def _trim_days(days: list[dict]) -> list[dict]:
    days.sort(key=lambda entry: entry["date"])
    return days[-MESSAGE_DAY_LIMIT:]


def _zero_snapshot(tenant_id: uuid.UUID, now: datetime) -> AnalyticsSnapshot:
    return AnalyticsSnapshot(
        tenant_id=tenant_id,
        total_documents=0,
        total_messages=0,
        total_conversations=0,
        total_projects=0,
        total_users=0,
        documents_ready=0,
        documents_processing=0,
        documents_error=0,
        documents_by_project=[],
        messages_by_day=[],
        recent_documents=[],
        recent_conversations=[],
        processing_rate=0,
        avg_messages_per_conversation=0,
        avg_documents_per_project=0,
        last_updated=now,
    )


class AnalyticsAggregator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
        max_attempts: int = 10,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self.max_attempts = max_attempts

    async def _load(
        self, session: AsyncSession, tenant_id: uuid.UUID
    ) -> Optional[AnalyticsSnapshot]:
        return await session.scalar(
            select(AnalyticsSnapshot).where(AnalyticsSnapshot.tenant_id == tenant_id)
        )

    async def ensure(self, tenant_id: uuid.UUID) -> AnalyticsSnapshot:
        """
        Return the tenant's snapshot, creating a zeroed one on first access.

        Two concurrent first accesses both try to insert; the unique
        constraint on tenant_id rejects the loser, which then reads the
        winner's row.
        """
        async with tenant_session(self._session_factory, tenant_id) as session:
            snapshot = await self._load(session, tenant_id)
            if snapshot is not None:
                return snapshot
            snapshot = _zero_snapshot(tenant_id, self._clock())
            session.add(snapshot)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.debug(f"Analytics snapshot for tenant {tenant_id} created concurrently")
            else:
                logger.info(f"Initialized analytics snapshot for tenant {tenant_id}")
                return snapshot

        # The tenant setting ended with the rolled back transaction.
        async with tenant_session(self._session_factory, tenant_id) as session:
            snapshot = await self._load(session, tenant_id)
        if snapshot is None:
            raise AnalyticsConflictError(
                f"Analytics snapshot for tenant {tenant_id} could not be created"
            )
        return snapshot

    async def _apply(
        self, tenant_id: uuid.UUID, mutate: Callable[[AnalyticsSnapshot], None]
    ) -> AnalyticsSnapshot:
        await self.ensure(tenant_id)
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with tenant_session(self._session_factory, tenant_id) as session:
                    snapshot = await self._load(session, tenant_id)
                    mutate(snapshot)
                    compute_derived(snapshot)
                    snapshot.last_updated = self._clock()
                    await session.commit()
                    return snapshot
            except StaleDataError:
                logger.debug(
                    f"Analytics update for tenant {tenant_id} lost a race "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
        raise AnalyticsConflictError(
            f"Analytics update for tenant {tenant_id} failed after {self.max_attempts} attempts"
        )

    async def record_document(
        self,
        tenant_id: uuid.UUID,
        filename: str,
        vectorized: bool = False,
        project_id: uuid.UUID | str | None = None,
        project_name: Optional[str] = None,
    ) -> AnalyticsSnapshot:
        now = self._clock()

        def mutate(snapshot: AnalyticsSnapshot) -> None:
            snapshot.total_documents += 1
            if vectorized:
                snapshot.documents_ready += 1
            else:
                snapshot.documents_processing += 1

            projects = copy.deepcopy(snapshot.documents_by_project)
            entry = _upsert_project(projects, project_id, project_name)
            entry["document_count"] += 1
            if vectorized:
                entry["vectorized_count"] += 1
            snapshot.documents_by_project = _bound_projects(projects, entry)

            recent = {
                "filename": filename,
                "vectorized": bool(vectorized),
                "created_at": now.isoformat(),
                "project_id": str(project_id) if project_id else None,
                "project_name": project_name or UNASSIGNED_NAME,
            }
            snapshot.recent_documents = [recent, *snapshot.recent_documents][
                :RECENT_DOCUMENT_LIMIT
            ]

        return await self._apply(tenant_id, mutate)

    async def mark_vectorized(
        self,
        tenant_id: uuid.UUID,
        project_id: uuid.UUID | str | None = None,
        project_name: Optional[str] = None,
    ) -> AnalyticsSnapshot:
        def mutate(snapshot: AnalyticsSnapshot) -> None:
            snapshot.documents_processing = max(snapshot.documents_processing - 1, 0)
            snapshot.documents_ready += 1
            projects = copy.deepcopy(snapshot.documents_by_project)
            entry = _upsert_project(projects, project_id, project_name)
            entry["vectorized_count"] += 1
            snapshot.documents_by_project = _bound_projects(projects, entry)

        return await self._apply(tenant_id, mutate)

    async def mark_failed(
        self,
        tenant_id: uuid.UUID,
        project_id: uuid.UUID | str | None = None,
        project_name: Optional[str] = None,
    ) -> AnalyticsSnapshot:
        def mutate(snapshot: AnalyticsSnapshot) -> None:
            snapshot.documents_processing = max(snapshot.documents_processing - 1, 0)
            snapshot.documents_error += 1

        logger.info(
            f"Document in project {_project_key(project_id)} failed ingestion (tenant {tenant_id})"
        )
        return await self._apply(tenant_id, mutate)

    async def record_conversation(
        self,
        tenant_id: uuid.UUID,
        title: str,
        message_count: int,
        project_id: uuid.UUID | str | None = None,
        project_name: Optional[str] = None,
        conversation_id: uuid.UUID | str | None = None,
        new_conversation: bool = True,
    ) -> AnalyticsSnapshot:
        now = self._clock()
        today = now.date().isoformat()

        def mutate(snapshot: AnalyticsSnapshot) -> None:
            if new_conversation:
                snapshot.total_conversations += 1
            snapshot.total_messages += message_count

            days = copy.deepcopy(snapshot.messages_by_day)
            _upsert_day(days, today)["count"] += message_count
            snapshot.messages_by_day = _trim_days(days)

            recent = list(snapshot.recent_conversations)
            total_for_conversation = message_count
            if conversation_id is not None:
                key = str(conversation_id)
                previous = [e for e in recent if e.get("conversation_id") == key]
                total_for_conversation += sum(e["messages_count"] for e in previous)
                recent = [e for e in recent if e.get("conversation_id") != key]
            entry = {
                "conversation_id": str(conversation_id) if conversation_id else None,
                "title": title,
                "messages_count": total_for_conversation,
                "updated_at": now.isoformat(),
                "project_id": str(project_id) if project_id else None,
                "project_name": project_name or UNASSIGNED_NAME,
            }
            snapshot.recent_conversations = [entry, *recent][:RECENT_CONVERSATION_LIMIT]

        return await self._apply(tenant_id, mutate)

    async def record_user(self, tenant_id: uuid.UUID) -> AnalyticsSnapshot:
        def mutate(snapshot: AnalyticsSnapshot) -> None:
            snapshot.total_users += 1

        return await self._apply(tenant_id, mutate)

    async def record_project(self, tenant_id: uuid.UUID) -> AnalyticsSnapshot:
        def mutate(snapshot: AnalyticsSnapshot) -> None:
            snapshot.total_projects += 1

        return await self._apply(tenant_id, mutate)

    async def get_snapshot(self, tenant_id: uuid.UUID) -> AnalyticsSnapshot:
        return await self.ensure(tenant_id)

    async def reconcile(self, tenant_id: uuid.UUID) -> AnalyticsSnapshot:
        """
        Recount documents, conversations and messages from the source tables.

        Repairs drift left by analytics updates that were dropped. Projects,
        users and the recent-activity lists are not recounted: they have no
        source table in this service.
        """
        now = self._clock()
        since = (now - timedelta(days=MESSAGE_DAY_LIMIT - 1)).replace(
            hour=0, minute=0, second=0, microsecond=0
        )
        async with tenant_session(self._session_factory, tenant_id) as session:
            status_rows = (
                await session.execute(
                    select(Document.project_id, Document.status, func.count())
                    .where(Document.tenant_id == tenant_id)
                    .group_by(Document.project_id, Document.status)
                )
            ).all()
            conversation_count = await session.scalar(
                select(func.count()).select_from(Conversation).where(
                    Conversation.tenant_id == tenant_id
                )
            )
            message_count = await session.scalar(
                select(func.count()).select_from(Message).where(Message.tenant_id == tenant_id)
            )
            message_times = (
                await session.scalars(
                    select(Message.created_at).where(
                        Message.tenant_id == tenant_id, Message.created_at >= since
                    )
                )
            ).all()

        by_status = {status: 0 for status in DocumentStatus}
        by_project: dict[str, dict[str, int]] = {}
        for project_id, status, count in status_rows:
            by_status[DocumentStatus(status)] += count
            counts = by_project.setdefault(
                _project_key(project_id), {"document_count": 0, "vectorized_count": 0}
            )
            counts["document_count"] += count
            if status == DocumentStatus.READY:
                counts["vectorized_count"] += count

        by_day: dict[str, int] = {}
        for created_at in message_times:
            day = created_at.date().isoformat()
            by_day[day] = by_day.get(day, 0) + 1

        def mutate(snapshot: AnalyticsSnapshot) -> None:
            snapshot.total_documents = sum(by_status.values())
            snapshot.documents_ready = by_status[DocumentStatus.READY]
            snapshot.documents_processing = by_status[DocumentStatus.PENDING]
            snapshot.documents_error = by_status[DocumentStatus.ERROR]
            snapshot.total_conversations = conversation_count or 0
            snapshot.total_messages = message_count or 0

            names = {
                entry["project_id"]: entry["project_name"]
                for entry in snapshot.documents_by_project
            }
            projects = [
                {
                    "project_id": key,
                    "project_name": names.get(
                        key, UNASSIGNED_NAME if key == UNASSIGNED_KEY else key
                    ),
                    **counts,
                }
                for key, counts in by_project.items()
            ]
            projects.sort(key=lambda entry: entry["document_count"], reverse=True)
            snapshot.documents_by_project = projects[:PROJECT_ROLLUP_LIMIT]
            snapshot.messages_by_day = _trim_days(
                [{"date": day, "count": count} for day, count in by_day.items()]
            )

        snapshot = await self._apply(tenant_id, mutate)
        logger.info(f"Reconciled analytics for tenant {tenant_id}")
        return snapshot


async def run_analytics_update(
    update: Awaitable[T], description: str = "analytics update"
) -> Optional[T]:
    """
    Await an aggregator call on behalf of a business flow. Analytics is
    secondary to the upload or chat that triggered it, so failures are
    logged and dropped; `reconcile` repairs the resulting drift.
    """
    try:
        return await update
    except Exception as e:
        logger.error(f"Failed to apply {description}: {e}", exc_info=True)
        return None

