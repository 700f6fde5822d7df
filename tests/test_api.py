import threading
import uuid
from datetime import timedelta

import fitz
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from docassist.api.v1 import documents as documents_router
from docassist.main import app
from docassist.schemas.chat import ContentEvent, ConversationIdEvent, DoneEvent, decode_sse_line
from docassist.services.container import build_services
from docassist.settings import settings
from docassist.utils.file_validator import extract_pdf_text
from docassist.utils.jwt_manager import create_access_token
from tests.fakes import scripted_model

ANSWER = "Refunds are processed within five business days."


def make_pdf(text: str) -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def parse_events(body: str):
    events = [decode_sse_line(line) for line in body.splitlines()]
    return [event for event in events if event is not None]


@pytest_asyncio.fixture
async def client(session_factory, embeddings, metrics):
    config = settings.model_copy(update={"VECTOR_BACKEND": "memory"})
    app.state.metrics = metrics
    app.state.services = build_services(
        config, session_factory, embeddings, scripted_model(ANSWER), metrics
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    del app.state.services
    del app.state.metrics


@pytest.fixture
def auth(tenant_a, user_id):
    return {"Authorization": f"Bearer {create_access_token(user_id, tenant_a)}"}


@pytest.fixture
def eager(monkeypatch):
    monkeypatch.setattr(settings, "INGESTION_EAGER", True)


async def upload(client, auth, text="Refunds are processed within five business days.", **form):
    return await client.post(
        "/api/v1/documents/upload",
        headers=auth,
        files={"file": ("policy.pdf", make_pdf(text), "application/pdf")},
        data=form,
    )


@pytest.mark.asyncio
async def test_requests_without_valid_token_are_rejected(client, tenant_a, user_id):
    missing = await client.get("/api/v1/analytics")
    assert missing.status_code in (401, 403)

    expired = create_access_token(user_id, tenant_a, expires_in=timedelta(seconds=-10))
    response = await client.get(
        "/api/v1/analytics", headers={"Authorization": f"Bearer {expired}"}
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Token has expired."

    response = await client.get(
        "/api/v1/analytics", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_upload_ingests_in_process(client, auth, eager, tenant_a):
    response = await upload(client, auth)

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "pending"
    assert body["task_id"] is None

    document = await client.get(f"/api/v1/documents/{body['id']}", headers=auth)
    assert document.status_code == 200
    assert document.json()["status"] == "ready"

    analytics = (await client.get("/api/v1/analytics", headers=auth)).json()
    assert analytics["total_documents"] == 1
    assert analytics["documents_ready"] == 1
    assert analytics["recent_documents"][0]["filename"] == "policy.pdf"


@pytest.mark.asyncio
async def test_pdf_parsing_runs_off_the_event_loop(client, auth, eager, monkeypatch):
    loop_thread = threading.get_ident()
    parse_threads = []

    def recording_extract(data):
        parse_threads.append(threading.get_ident())
        return extract_pdf_text(data)

    monkeypatch.setattr(documents_router, "extract_pdf_text", recording_extract)

    response = await upload(client, auth)

    assert response.status_code == 202
    assert len(parse_threads) == 1
    assert parse_threads[0] != loop_thread


@pytest.mark.asyncio
async def test_upload_rejects_non_pdf(client, auth, eager):
    response = await client.post(
        "/api/v1/documents/upload",
        headers=auth,
        files={"file": ("notes.txt", b"plain text", "text/plain")},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_upload_marks_document_failed_when_queue_is_down(client, auth, monkeypatch):
    def broker_down(*args, **kwargs):
        raise ConnectionError("redis unreachable")

    monkeypatch.setattr(settings, "INGESTION_EAGER", False)
    monkeypatch.setattr(documents_router.ingest_document, "delay", broker_down)

    response = await upload(client, auth)

    assert response.status_code == 503
    analytics = (await client.get("/api/v1/analytics", headers=auth)).json()
    assert analytics["documents_error"] == 1
    assert analytics["documents_processing"] == 0


@pytest.mark.asyncio
async def test_document_rename_and_delete(client, auth, eager, tenant_b, user_id):
    document_id = (await upload(client, auth)).json()["id"]

    renamed = await client.patch(
        f"/api/v1/documents/{document_id}", headers=auth, json={"filename": "refunds.pdf"}
    )
    assert renamed.status_code == 200
    assert renamed.json()["filename"] == "refunds.pdf"

    other_tenant = {"Authorization": f"Bearer {create_access_token(user_id, tenant_b)}"}
    foreign = await client.delete(f"/api/v1/documents/{document_id}", headers=other_tenant)
    assert foreign.status_code == 404

    deleted = await client.delete(f"/api/v1/documents/{document_id}", headers=auth)
    assert deleted.status_code == 200
    assert deleted.json() == {"id": document_id, "filename": "refunds.pdf", "vectors_deleted": 1}
    missing = await client.get(f"/api/v1/documents/{document_id}", headers=auth)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_project_delete(client, auth, eager):
    project_id = str(uuid.uuid4())
    await upload(client, auth, project_id=project_id, project_name="Support")
    await upload(client, auth, project_id=project_id, project_name="Support")

    response = await client.delete(f"/api/v1/projects/{project_id}", headers=auth)

    assert response.status_code == 200
    assert response.json() == {
        "project_id": project_id,
        "documents_deleted": 2,
        "vectors_deleted": 2,
    }


@pytest.mark.asyncio
async def test_chat_stream_and_conversation_lifecycle(client, auth):
    response = await client.post(
        "/api/v1/chat/stream", headers=auth, json={"message": "How long do refunds take?"}
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = parse_events(response.text)
    assert "".join(e.content for e in events if isinstance(e, ContentEvent)) == ANSWER
    assert isinstance(events[-1], DoneEvent)
    conversation_id = next(
        e.conversation_id for e in events if isinstance(e, ConversationIdEvent)
    )

    listed = (await client.get("/api/v1/chat/conversations", headers=auth)).json()
    assert [c["id"] for c in listed] == [conversation_id]

    detail = (await client.get(f"/api/v1/chat/conversations/{conversation_id}", headers=auth)).json()
    assert [m["role"] for m in detail["messages"]] == ["user", "assistant"]
    assert detail["messages"][1]["content"] == ANSWER

    deleted = await client.delete(f"/api/v1/chat/conversations/{conversation_id}", headers=auth)
    assert deleted.status_code == 204
    gone = await client.get(f"/api/v1/chat/conversations/{conversation_id}", headers=auth)
    assert gone.status_code == 404


@pytest.mark.asyncio
async def test_chat_stream_unknown_conversation_is_404(client, auth):
    response = await client.post(
        "/api/v1/chat/stream",
        headers=auth,
        json={"message": "hello", "conversationId": str(uuid.uuid4())},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_empty_message_is_rejected(client, auth):
    response = await client.post("/api/v1/chat/stream", headers=auth, json={"message": ""})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_reconcile_and_metrics(client, auth, eager):
    await upload(client, auth)

    reconciled = await client.post("/api/v1/analytics/reconcile", headers=auth)
    assert reconciled.status_code == 200
    assert reconciled.json()["documents_ready"] == 1

    snapshot = (await client.get("/api/v1/metrics", headers=auth)).json()
    assert snapshot["requests"] == 3
    assert snapshot["errors"] == 0
