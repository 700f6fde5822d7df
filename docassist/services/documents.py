"""Document records and their deletion cascade into the vector store."""

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docassist.config.db import tenant_session
from docassist.models.document import Document, DocumentStatus
from docassist.services.analytics import AnalyticsAggregator, run_analytics_update
from docassist.services.vector_store import VectorStoreAdapter
from docassist.utils.logging_config import logger


class DocumentNotFoundError(LookupError):
    """The document does not exist for this tenant."""


@dataclass(frozen=True)
class DeletedDocument:
    id: uuid.UUID
    filename: str
    vectors_deleted: int


@dataclass(frozen=True)
class ProjectDeletion:
    project_id: uuid.UUID
    documents_deleted: int
    vectors_deleted: int


class DocumentService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        vector_store: VectorStoreAdapter,
        analytics: AnalyticsAggregator,
    ):
        self._session_factory = session_factory
        self._vector_store = vector_store
        self._analytics = analytics

    async def create(
        self,
        tenant_id: uuid.UUID,
        filename: str,
        content: str,
        size: int,
        project_id: Optional[uuid.UUID] = None,
        project_name: Optional[str] = None,
    ) -> Document:
        async with tenant_session(self._session_factory, tenant_id) as session:
            document = Document(
                tenant_id=tenant_id,
                project_id=project_id,
                filename=filename,
                content=content,
                size=size,
                status=DocumentStatus.PENDING,
            )
            session.add(document)
            await session.commit()
        logger.info(f"Created document {document.id} ('{filename}') for tenant {tenant_id}")

        await run_analytics_update(
            self._analytics.record_document(
                tenant_id,
                filename,
                vectorized=False,
                project_id=project_id,
                project_name=project_name,
            ),
            "document upload analytics",
        )
        return document

    async def get(self, document_id: uuid.UUID, tenant_id: uuid.UUID) -> Document:
        async with tenant_session(self._session_factory, tenant_id) as session:
            document = await session.scalar(
                select(Document).where(
                    Document.id == document_id, Document.tenant_id == tenant_id
                )
            )
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        return document

    async def rename(
        self, document_id: uuid.UUID, tenant_id: uuid.UUID, filename: str
    ) -> Document:
        filename = filename.strip()
        if not filename:
            raise ValueError("Filename must not be blank")
        async with tenant_session(self._session_factory, tenant_id) as session:
            document = await session.scalar(
                select(Document).where(
                    Document.id == document_id, Document.tenant_id == tenant_id
                )
            )
            if document is None:
                raise DocumentNotFoundError(str(document_id))
            document.filename = filename
            await session.commit()
        return document

    async def set_status(
        self,
        document_id: uuid.UUID,
        tenant_id: uuid.UUID,
        status: DocumentStatus,
        expected: DocumentStatus = DocumentStatus.PENDING,
    ) -> bool:
        """
        Move a document from `expected` to `status`. Returns False when the
        document was deleted or already moved, so callers apply each
        transition's side effects at most once.
        """
        async with tenant_session(self._session_factory, tenant_id) as session:
            result = await session.execute(
                update(Document)
                .where(
                    Document.id == document_id,
                    Document.tenant_id == tenant_id,
                    Document.status == expected,
                )
                .values(status=status)
            )
            await session.commit()
            return result.rowcount == 1

    async def delete(self, document_id: uuid.UUID, tenant_id: uuid.UUID) -> DeletedDocument:
        document = await self.get(document_id, tenant_id)
        vectors_deleted = await self._vector_store.delete_document_vectors(
            document_id, tenant_id
        )
        async with tenant_session(self._session_factory, tenant_id) as session:
            await session.execute(
                delete(Document).where(
                    Document.id == document_id, Document.tenant_id == tenant_id
                )
            )
            await session.commit()
        logger.info(
            f"Deleted document {document_id} and {vectors_deleted} chunks (tenant {tenant_id})"
        )
        return DeletedDocument(
            id=document.id, filename=document.filename, vectors_deleted=vectors_deleted
        )

    async def delete_project(
        self, project_id: uuid.UUID, tenant_id: uuid.UUID
    ) -> ProjectDeletion:
        async with tenant_session(self._session_factory, tenant_id) as session:
            document_ids = list(
                (
                    await session.scalars(
                        select(Document.id).where(
                            Document.project_id == project_id,
                            Document.tenant_id == tenant_id,
                        )
                    )
                ).all()
            )
        vectors_deleted = await self._vector_store.delete_project_vectors(
            project_id, tenant_id, document_ids
        )
        if document_ids:
            async with tenant_session(self._session_factory, tenant_id) as session:
                await session.execute(
                    delete(Document).where(
                        Document.tenant_id == tenant_id, Document.id.in_(document_ids)
                    )
                )
                await session.commit()
        logger.info(
            f"Deleted project {project_id}: {len(document_ids)} documents, "
            f"{vectors_deleted} chunks (tenant {tenant_id})"
        )
        return ProjectDeletion(
            project_id=project_id,
            documents_deleted=len(document_ids),
            vectors_deleted=vectors_deleted,
        )
