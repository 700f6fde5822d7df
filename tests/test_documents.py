import uuid

import pytest

from docassist.models.document import DocumentStatus
from docassist.services.documents import DocumentNotFoundError, DocumentService
from docassist.services.vector_store import VectorStoreAdapter
from tests.test_vector_store import FailingBackend


@pytest.mark.asyncio
async def test_create_records_pending_document(documents, analytics, tenant_a):
    document = await documents.create(tenant_a, "guide.pdf", "body", 4)

    assert document.status == DocumentStatus.PENDING
    fetched = await documents.get(document.id, tenant_a)
    assert fetched.filename == "guide.pdf"
    snapshot = await analytics.get_snapshot(tenant_a)
    assert snapshot.total_documents == 1
    assert snapshot.documents_processing == 1


@pytest.mark.asyncio
async def test_documents_are_invisible_to_other_tenants(documents, tenant_a, tenant_b):
    document = await documents.create(tenant_a, "guide.pdf", "body", 4)

    with pytest.raises(DocumentNotFoundError):
        await documents.get(document.id, tenant_b)
    with pytest.raises(DocumentNotFoundError):
        await documents.rename(document.id, tenant_b, "stolen.pdf")
    with pytest.raises(DocumentNotFoundError):
        await documents.delete(document.id, tenant_b)
    assert (await documents.get(document.id, tenant_a)).filename == "guide.pdf"


@pytest.mark.asyncio
async def test_rename(documents, tenant_a):
    document = await documents.create(tenant_a, "old.pdf", "body", 4)

    renamed = await documents.rename(document.id, tenant_a, "  new.pdf ")
    assert renamed.filename == "new.pdf"
    with pytest.raises(ValueError):
        await documents.rename(document.id, tenant_a, "   ")


@pytest.mark.asyncio
async def test_set_status_only_moves_from_expected(documents, tenant_a):
    document = await documents.create(tenant_a, "a.pdf", "body", 4)

    assert await documents.set_status(document.id, tenant_a, DocumentStatus.READY)
    assert not await documents.set_status(document.id, tenant_a, DocumentStatus.ERROR)
    assert (await documents.get(document.id, tenant_a)).status == DocumentStatus.READY


@pytest.mark.asyncio
async def test_delete_cascades_to_own_chunks_only(
    documents, vector_store, tenant_a, tenant_b
):
    document = await documents.create(tenant_a, "a.pdf", "body", 4)
    await vector_store.embed_and_store(["c1", "c2", "c3"], tenant_a, document.id)
    await vector_store.embed_and_store(["other"], tenant_b, document.id)

    deleted = await documents.delete(document.id, tenant_a)

    assert deleted.vectors_deleted == 3
    assert deleted.filename == "a.pdf"
    assert vector_store.backend.records_for(tenant_a) == []
    assert len(vector_store.backend.records_for(tenant_b)) == 1
    with pytest.raises(DocumentNotFoundError):
        await documents.get(document.id, tenant_a)


@pytest.mark.asyncio
async def test_delete_proceeds_when_vector_store_fails(
    session_factory, embeddings, analytics, tenant_a
):
    service = DocumentService(
        session_factory, VectorStoreAdapter(FailingBackend(), embeddings), analytics
    )
    document = await service.create(tenant_a, "a.pdf", "body", 4)

    deleted = await service.delete(document.id, tenant_a)

    assert deleted.vectors_deleted == 0
    with pytest.raises(DocumentNotFoundError):
        await service.get(document.id, tenant_a)


@pytest.mark.asyncio
async def test_delete_project_removes_its_documents_and_chunks(
    documents, vector_store, tenant_a
):
    project_id = uuid.uuid4()
    in_project = [
        await documents.create(tenant_a, f"{i}.pdf", "body", 4, project_id) for i in range(2)
    ]
    outside = await documents.create(tenant_a, "keep.pdf", "body", 4)
    for document in [*in_project, outside]:
        await vector_store.embed_and_store(["x", "y"], tenant_a, document.id)

    deletion = await documents.delete_project(project_id, tenant_a)

    assert deletion.documents_deleted == 2
    assert deletion.vectors_deleted == 4
    remaining = vector_store.backend.records_for(tenant_a)
    assert {record.document_id for record in remaining} == {outside.id}
    assert (await documents.get(outside.id, tenant_a)).filename == "keep.pdf"


@pytest.mark.asyncio
async def test_delete_unknown_project_is_a_no_op(documents, tenant_a):
    deletion = await documents.delete_project(uuid.uuid4(), tenant_a)
    assert deletion.documents_deleted == 0
    assert deletion.vectors_deleted == 0
