"""Audit trail written by handlers after their primary effect has committed."""

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docassist.config.db import tenant_session
from docassist.models.audit_log import AuditAction, AuditLog
from docassist.utils.logging_config import logger


@dataclass(frozen=True)
class AuditEvent:
    actor_id: uuid.UUID
    action: AuditAction
    target: str
    tenant_id: uuid.UUID
    target_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)


class AuditTrail:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def record(self, event: AuditEvent) -> bool:
        """
        Persist one audit entry. Never raises: the action being audited has
        already happened, so a failed write is only logged.
        """
        try:
            async with tenant_session(self._session_factory, event.tenant_id) as session:
                session.add(
                    AuditLog(
                        tenant_id=event.tenant_id,
                        actor_id=event.actor_id,
                        action=event.action,
                        target=event.target[:500],
                        target_id=event.target_id,
                        details=event.details,
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to write audit entry {event.action.value} on '{event.target}': {e}",
                exc_info=True,
            )
            return False
        return True
