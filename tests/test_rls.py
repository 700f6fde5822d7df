"""
Row level security checks against a migrated PostgreSQL database.

Set TEST_DATABASE_URL to a non-superuser connection (superusers bypass RLS)
on a database upgraded with `alembic upgrade head`.
"""

import os
import uuid

import pytest
import pytest_asyncio
from langchain_core.embeddings import DeterministicFakeEmbedding
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from docassist.config.db import create_session_factory, tenant_session
from docassist.services.analytics import AnalyticsAggregator
from docassist.services.documents import DocumentService
from docassist.services.vector_store import PgVectorBackend, VectorStoreAdapter

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(
    not TEST_DATABASE_URL, reason="TEST_DATABASE_URL is not set"
)


@pytest_asyncio.fixture(scope="function")
async def pg_session_factory():
    db_engine = create_async_engine(TEST_DATABASE_URL)
    async with db_engine.connect() as conn:
        is_superuser = await conn.scalar(
            text("SELECT current_user IN (SELECT rolname FROM pg_roles WHERE rolsuper)")
        )
    if is_superuser:
        await db_engine.dispose()
        pytest.skip("This test must be run as a non-superuser to validate RLS.")
    yield create_session_factory(db_engine)
    await db_engine.dispose()


@pytest.mark.asyncio
async def test_rls_hides_other_tenants_rows(pg_session_factory):
    tenant_a, tenant_b = uuid.uuid4(), uuid.uuid4()
    vector_store = VectorStoreAdapter(
        PgVectorBackend(pg_session_factory), DeterministicFakeEmbedding(size=384)
    )
    documents = DocumentService(
        pg_session_factory, vector_store, AnalyticsAggregator(pg_session_factory)
    )
    document = await documents.create(tenant_a, "a.pdf", "Doc for A", 9)
    await vector_store.embed_and_store(["Doc for A"], tenant_a, document.id)

    try:
        # No tenant_id predicate: only the policy stands between the tenants.
        async with tenant_session(pg_session_factory, tenant_b) as session:
            leaked_document = await session.scalar(
                text("SELECT id FROM documents WHERE id = :id"), {"id": document.id}
            )
            leaked_chunks = await session.scalar(
                text("SELECT count(*) FROM chunks WHERE document_id = :id"),
                {"id": document.id},
            )
        assert leaked_document is None, "Tenant B was able to read Tenant A's document."
        assert leaked_chunks == 0

        async with tenant_session(pg_session_factory, tenant_a) as session:
            own = await session.scalar(
                text("SELECT id FROM documents WHERE id = :id"), {"id": document.id}
            )
        assert own == document.id, "Tenant A could not read its own document."
    finally:
        await documents.delete(document.id, tenant_a)
