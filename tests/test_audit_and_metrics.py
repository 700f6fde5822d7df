import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine

from docassist.config.db import create_session_factory
from docassist.models.audit_log import AuditAction, AuditLog
from docassist.services.audit import AuditEvent, AuditTrail
from docassist.services.metrics import MetricsCollector


@pytest.mark.asyncio
async def test_audit_record_is_persisted(audit, session_factory, tenant_a, user_id):
    document_id = uuid.uuid4()
    ok = await audit.record(
        AuditEvent(
            actor_id=user_id,
            action=AuditAction.DELETE_DOCUMENT,
            target="guide.pdf",
            tenant_id=tenant_a,
            target_id=str(document_id),
            details={"vectors_deleted": 3},
        )
    )

    assert ok
    async with session_factory() as session:
        entry = await session.scalar(select(AuditLog))
    assert entry.action == AuditAction.DELETE_DOCUMENT
    assert entry.tenant_id == tenant_a
    assert entry.details == {"vectors_deleted": 3}


@pytest.mark.asyncio
async def test_audit_failure_is_logged_not_raised(tmp_path, tenant_a, user_id, caplog):
    # No schema: every insert fails.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    trail = AuditTrail(create_session_factory(engine))

    ok = await trail.record(
        AuditEvent(
            actor_id=user_id,
            action=AuditAction.UPLOAD_DOCUMENT,
            target="a.pdf",
            tenant_id=tenant_a,
        )
    )
    await engine.dispose()

    assert ok is False
    assert "Failed to write audit entry UPLOAD_DOCUMENT" in caplog.text


def test_metrics_snapshot():
    now = [100.0]
    metrics = MetricsCollector(clock=lambda: now[0])
    metrics.record_request()
    metrics.record_request()
    metrics.record_error()
    metrics.increment("chat_completed")
    now[0] = 142.7

    assert metrics.snapshot() == {
        "requests": 2,
        "errors": 1,
        "uptime_seconds": 42,
        "counters": {"chat_completed": 1},
    }
    assert metrics.get("chat_failed") == 0


def test_collectors_are_independent():
    first, second = MetricsCollector(), MetricsCollector()
    first.increment("chat_cancelled")
    assert second.get("chat_cancelled") == 0
