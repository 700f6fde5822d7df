"""
Document ingestion: split, embed and index a stored document's text.
"""

import asyncio
import uuid
from typing import Optional

from langchain_text_splitters import TextSplitter

from docassist.config.db import create_session_factory, create_worker_engine
from docassist.models.document import DocumentStatus
from docassist.services.analytics import AnalyticsAggregator, run_analytics_update
from docassist.services.chunking import SlidingWindowSplitter
from docassist.services.documents import DocumentNotFoundError, DocumentService
from docassist.services.embeddings import get_embedding_model
from docassist.services.vector_store import (
    VectorStoreAdapter,
    VectorStoreUnavailableError,
    build_vector_store,
)
from docassist.settings import settings
from docassist.utils.logging_config import logger
from docassist.worker import celery_app


class IngestionPipeline:
    def __init__(
        self,
        documents: DocumentService,
        vector_store: VectorStoreAdapter,
        analytics: AnalyticsAggregator,
        splitter: Optional[TextSplitter] = None,
    ):
        self._documents = documents
        self._vector_store = vector_store
        self._analytics = analytics
        self._splitter = splitter or SlidingWindowSplitter()

    async def ingest(
        self,
        document_id: uuid.UUID,
        tenant_id: uuid.UUID,
        project_name: Optional[str] = None,
        final_attempt: bool = True,
    ) -> int:
        """
        Index one pending document and mark it ready.

        Existing chunks for the document are deleted first, so a retried
        run never leaves duplicates. Returns the number of chunks stored.
        When a transient failure will be retried (`final_attempt` False) the
        document stays pending; otherwise it is marked as failed.
        """
        try:
            document = await self._documents.get(document_id, tenant_id)
        except DocumentNotFoundError:
            logger.warning(f"Document {document_id} no longer exists; skipping ingestion")
            return 0
        if document.status != DocumentStatus.PENDING:
            logger.info(
                f"Document {document_id} is already {document.status.value}; skipping ingestion"
            )
            return 0

        logger.info(f"Starting ingestion for document {document_id}, tenant {tenant_id}")
        try:
            chunks = self._splitter.split_text(document.content)
            await self._vector_store.delete_by_document(document.id, tenant_id)
            stored = await self._vector_store.embed_and_store(chunks, tenant_id, document.id)
        except Exception as e:
            if isinstance(e, VectorStoreUnavailableError) and not final_attempt:
                logger.warning(f"Ingestion of document {document_id} will be retried: {e}")
                raise
            logger.error(f"Ingestion failed for document {document_id}: {e}", exc_info=True)
            if await self._documents.set_status(document.id, tenant_id, DocumentStatus.ERROR):
                await run_analytics_update(
                    self._analytics.mark_failed(tenant_id, document.project_id, project_name),
                    "ingestion failure analytics",
                )
            raise

        if not await self._documents.set_status(document.id, tenant_id, DocumentStatus.READY):
            # Deleted while we were embedding; its chunks would be orphans.
            logger.warning(f"Document {document_id} changed during ingestion; removing its chunks")
            await self._vector_store.delete_document_vectors(document.id, tenant_id)
            return 0

        await run_analytics_update(
            self._analytics.mark_vectorized(tenant_id, document.project_id, project_name),
            "ingestion analytics",
        )
        logger.info(f"Successfully indexed document {document_id} ({stored} chunks)")
        return stored


async def ingest_in_background(
    pipeline: IngestionPipeline,
    document_id: uuid.UUID,
    tenant_id: uuid.UUID,
    project_name: Optional[str] = None,
) -> None:
    """In-process ingestion for INGESTION_EAGER; failures are already recorded on the document."""
    try:
        await pipeline.ingest(document_id, tenant_id, project_name)
    except Exception as e:
        logger.error(f"Background ingestion of document {document_id} failed: {e}")


async def _run_ingestion(
    document_id: str, tenant_id: str, project_name: Optional[str], final_attempt: bool
) -> int:
    engine = create_worker_engine()
    try:
        session_factory = create_session_factory(engine)
        analytics = AnalyticsAggregator(
            session_factory, max_attempts=settings.ANALYTICS_MAX_UPDATE_ATTEMPTS
        )
        vector_store = build_vector_store(
            settings.VECTOR_BACKEND, session_factory, get_embedding_model()
        )
        pipeline = IngestionPipeline(
            DocumentService(session_factory, vector_store, analytics),
            vector_store,
            analytics,
        )
        return await pipeline.ingest(
            uuid.UUID(document_id), uuid.UUID(tenant_id), project_name, final_attempt
        )
    finally:
        await engine.dispose()


@celery_app.task(
    bind=True,
    name="ingest_document",
    max_retries=settings.INGESTION_MAX_RETRIES,
)
def ingest_document(
    self, document_id: str, tenant_id: str, project_name: Optional[str] = None
) -> int:
    """
    Celery task wrapping IngestionPipeline.ingest.

    Each run gets its own event loop and a NullPool engine. Only
    VectorStoreUnavailableError is retried, with exponential backoff.
    """
    final_attempt = self.request.retries >= self.max_retries
    try:
        return asyncio.run(
            _run_ingestion(document_id, tenant_id, project_name, final_attempt)
        )
    except VectorStoreUnavailableError as e:
        if final_attempt:
            raise
        raise self.retry(exc=e, countdown=2**self.request.retries) from e
