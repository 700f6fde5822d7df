"""
Tenant-scoped storage and similarity search for embedded document chunks.

Every read and delete takes the tenant id as a required argument and the
predicate is added here, never by callers. A search or delete that could
reach another tenant's chunks is a data leak, so a missing or malformed
tenant id is rejected with TenantScopeError before any storage access.
"""

import uuid
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from langchain_core.embeddings import Embeddings
from sqlalchemy import Delete, Select, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docassist.config.db import tenant_session
from docassist.models.chunk import Chunk
from docassist.utils.logging_config import logger


class TenantScopeError(ValueError):
    """A vector store operation was attempted without a valid tenant id."""


class VectorStoreUnavailableError(RuntimeError):
    """The embedding model or the vector backend failed; safe to retry."""


@dataclass(frozen=True)
class ChunkRecord:
    tenant_id: uuid.UUID
    document_id: uuid.UUID
    chunk_index: int
    text: str
    embedding: list[float]


@dataclass(frozen=True)
class ScoredChunk:
    text: str
    score: float
    document_id: uuid.UUID


def require_tenant(tenant_id: uuid.UUID | str | None) -> uuid.UUID:
    if isinstance(tenant_id, uuid.UUID):
        return tenant_id
    if tenant_id is None or not str(tenant_id).strip():
        raise TenantScopeError("tenant_id is required for every vector store operation")
    try:
        return uuid.UUID(str(tenant_id))
    except ValueError as e:
        raise TenantScopeError(f"Invalid tenant_id: {tenant_id!r}") from e


def _as_document_id(document_id: uuid.UUID | str) -> uuid.UUID:
    if isinstance(document_id, uuid.UUID):
        return document_id
    return uuid.UUID(str(document_id))


class VectorBackend(ABC):
    """Storage for chunk records. Implementations must honour the tenant argument."""

    @abstractmethod
    async def add(self, records: Sequence[ChunkRecord]) -> None: ...

    @abstractmethod
    async def delete(
        self, tenant_id: uuid.UUID, document_ids: Sequence[uuid.UUID]
    ) -> int: ...

    @abstractmethod
    async def search(
        self, tenant_id: uuid.UUID, embedding: list[float], top_k: int
    ) -> list[ScoredChunk]: ...


def build_delete_statement(
    tenant_id: uuid.UUID, document_ids: Sequence[uuid.UUID]
) -> Delete:
    return delete(Chunk).where(
        Chunk.tenant_id == tenant_id, Chunk.document_id.in_(list(document_ids))
    )


def build_search_statement(
    tenant_id: uuid.UUID, embedding: list[float], top_k: int
) -> Select:
    distance = Chunk.embedding.cosine_distance(embedding).label("distance")
    return (
        select(Chunk.content, Chunk.document_id, distance)
        .where(Chunk.tenant_id == tenant_id)
        .order_by(distance, Chunk.id)
        .limit(top_k)
    )


class PgVectorBackend(VectorBackend):
    """Chunks table on PostgreSQL, ranked by pgvector cosine distance."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def add(self, records: Sequence[ChunkRecord]) -> None:
        tenant_ids = {record.tenant_id for record in records}
        if len(tenant_ids) != 1:
            raise TenantScopeError("A chunk batch must belong to exactly one tenant")
        async with tenant_session(self._session_factory, tenant_ids.pop()) as session:
            session.add_all(
                [
                    Chunk(
                        tenant_id=record.tenant_id,
                        document_id=record.document_id,
                        chunk_index=record.chunk_index,
                        content=record.text,
                        embedding=record.embedding,
                    )
                    for record in records
                ]
            )
            await session.commit()

    async def delete(
        self, tenant_id: uuid.UUID, document_ids: Sequence[uuid.UUID]
    ) -> int:
        async with tenant_session(self._session_factory, tenant_id) as session:
            result = await session.execute(build_delete_statement(tenant_id, document_ids))
            await session.commit()
            return result.rowcount or 0

    async def search(
        self, tenant_id: uuid.UUID, embedding: list[float], top_k: int
    ) -> list[ScoredChunk]:
        async with tenant_session(self._session_factory, tenant_id) as session:
            rows = await session.execute(build_search_statement(tenant_id, embedding, top_k))
            return [
                ScoredChunk(
                    text=row.content, score=1.0 - float(row.distance), document_id=row.document_id
                )
                for row in rows
            ]


class InMemoryVectorBackend(VectorBackend):
    """
    Process-local backend with exact cosine similarity. Used for local runs
    with INGESTION_EAGER and by the test suite.
    """

    def __init__(self):
        self._records: list[ChunkRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def records_for(self, tenant_id: uuid.UUID) -> list[ChunkRecord]:
        return [record for record in self._records if record.tenant_id == tenant_id]

    async def add(self, records: Sequence[ChunkRecord]) -> None:
        self._records.extend(records)

    async def delete(
        self, tenant_id: uuid.UUID, document_ids: Sequence[uuid.UUID]
    ) -> int:
        targets = set(document_ids)
        kept = [
            record
            for record in self._records
            if not (record.tenant_id == tenant_id and record.document_id in targets)
        ]
        deleted = len(self._records) - len(kept)
        self._records = kept
        return deleted

    async def search(
        self, tenant_id: uuid.UUID, embedding: list[float], top_k: int
    ) -> list[ScoredChunk]:
        candidates = self.records_for(tenant_id)
        if not candidates:
            return []
        matrix = np.array([record.embedding for record in candidates], dtype=np.float32)
        query = np.array(embedding, dtype=np.float32)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        scores = np.divide(
            matrix @ query, norms, out=np.zeros(len(candidates), dtype=np.float32), where=norms > 0
        )
        # Stable sort keeps insertion order among equal scores.
        order = np.argsort(-scores, kind="stable")[:top_k]
        return [
            ScoredChunk(
                text=candidates[i].text,
                score=float(scores[i]),
                document_id=candidates[i].document_id,
            )
            for i in order
        ]


class VectorStoreAdapter:
    """Embeds chunks and runs tenant-scoped writes, deletes and searches."""

    def __init__(self, backend: VectorBackend, embeddings: Embeddings):
        self.backend = backend
        self._embeddings = embeddings

    async def embed_and_store(
        self,
        chunks: Sequence[str],
        tenant_id: uuid.UUID | str,
        document_id: uuid.UUID | str,
    ) -> int:
        """
        Embed `chunks` and persist them tagged with both ids.

        Returns the number of records written. A failure part-way leaves the
        batch in an unknown state; callers retry the whole document after
        deleting its chunks.
        """
        tenant_uuid = require_tenant(tenant_id)
        document_uuid = _as_document_id(document_id)
        if not chunks:
            return 0

        try:
            vectors = await self._embeddings.aembed_documents(list(chunks))
        except Exception as e:
            raise VectorStoreUnavailableError(f"Embedding failed: {e}") from e

        records = [
            ChunkRecord(
                tenant_id=tenant_uuid,
                document_id=document_uuid,
                chunk_index=index,
                text=text,
                embedding=[float(value) for value in vector],
            )
            for index, (text, vector) in enumerate(zip(chunks, vectors, strict=True))
        ]
        try:
            await self.backend.add(records)
        except SQLAlchemyError as e:
            raise VectorStoreUnavailableError(f"Vector write failed: {e}") from e
        logger.info(
            f"Stored {len(records)} chunks for document {document_uuid} (tenant {tenant_uuid})"
        )
        return len(records)

    async def delete_by_document(
        self, document_id: uuid.UUID | str, tenant_id: uuid.UUID | str
    ) -> int:
        tenant_uuid = require_tenant(tenant_id)
        try:
            return await self.backend.delete(tenant_uuid, [_as_document_id(document_id)])
        except SQLAlchemyError as e:
            raise VectorStoreUnavailableError(f"Vector delete failed: {e}") from e

    async def delete_by_project(
        self,
        project_id: uuid.UUID | str | None,
        tenant_id: uuid.UUID | str,
        document_ids: Sequence[uuid.UUID | str],
    ) -> int:
        tenant_uuid = require_tenant(tenant_id)
        if not document_ids:
            return 0
        ids = [_as_document_id(document_id) for document_id in document_ids]
        try:
            deleted = await self.backend.delete(tenant_uuid, ids)
        except SQLAlchemyError as e:
            raise VectorStoreUnavailableError(f"Vector delete failed: {e}") from e
        logger.info(f"Deleted {deleted} chunks for project {project_id} (tenant {tenant_uuid})")
        return deleted

    async def similarity_search(
        self, query: str, tenant_id: uuid.UUID | str, top_k: int
    ) -> list[ScoredChunk]:
        tenant_uuid = require_tenant(tenant_id)
        if top_k <= 0:
            return []
        try:
            embedding = await self._embeddings.aembed_query(query)
            return await self.backend.search(tenant_uuid, list(embedding), top_k)
        except Exception as e:
            raise VectorStoreUnavailableError(f"Similarity search failed: {e}") from e

    async def delete_document_vectors(
        self, document_id: uuid.UUID | str, tenant_id: uuid.UUID | str
    ) -> int:
        """
        Best-effort cascade used when a document is deleted. Returns the
        number of chunks removed, or 0 when the vector store failed; the
        caller deletes the document row regardless.
        """
        require_tenant(tenant_id)
        try:
            return await self.delete_by_document(document_id, tenant_id)
        except (VectorStoreUnavailableError, ValueError) as e:
            logger.warning(
                f"Vector cleanup failed for document {document_id} (tenant {tenant_id}); "
                f"chunks may be orphaned: {e}"
            )
            return 0

    async def delete_project_vectors(
        self,
        project_id: uuid.UUID | str | None,
        tenant_id: uuid.UUID | str,
        document_ids: Sequence[uuid.UUID | str],
    ) -> int:
        """Best-effort cascade used when a project and its documents are deleted."""
        require_tenant(tenant_id)
        try:
            return await self.delete_by_project(project_id, tenant_id, document_ids)
        except (VectorStoreUnavailableError, ValueError) as e:
            logger.warning(
                f"Vector cleanup failed for project {project_id} (tenant {tenant_id}); "
                f"chunks may be orphaned: {e}"
            )
            return 0


def build_vector_store(
    backend_name: str,
    session_factory: async_sessionmaker[AsyncSession],
    embeddings: Embeddings,
) -> VectorStoreAdapter:
    if backend_name == "memory":
        logger.warning("Using the in-memory vector backend; chunks are not persisted")
        backend: VectorBackend = InMemoryVectorBackend()
    elif backend_name == "pgvector":
        backend = PgVectorBackend(session_factory)
    else:
        raise ValueError(f"Unknown vector backend: {backend_name}")
    return VectorStoreAdapter(backend, embeddings)
