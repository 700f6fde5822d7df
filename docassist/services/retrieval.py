"""Builds grounding context for a question from the tenant's own chunks."""

import uuid

from docassist.services.vector_store import ScoredChunk, VectorStoreAdapter
from docassist.utils.logging_config import logger

CONTEXT_SEPARATOR = "\n\n"


class RetrievalEngine:
    def __init__(self, vector_store: VectorStoreAdapter, top_k: int = 3):
        self._vector_store = vector_store
        self.top_k = top_k

    async def retrieve(
        self, query: str, tenant_id: uuid.UUID | str, top_k: int | None = None
    ) -> list[ScoredChunk]:
        k = self.top_k if top_k is None else top_k
        chunks = await self._vector_store.similarity_search(query, tenant_id, k)
        logger.info(f"Retrieved {len(chunks)} chunks for tenant {tenant_id}")
        return chunks

    async def build_context(
        self, query: str, tenant_id: uuid.UUID | str, top_k: int | None = None
    ) -> str:
        """
        Concatenate the most relevant chunk texts, best first.

        An empty string means the tenant has nothing relevant; the answer is
        then generated without tenant-specific grounding.
        """
        chunks = await self.retrieve(query, tenant_id, top_k)
        return CONTEXT_SEPARATOR.join(chunk.text for chunk in chunks)
