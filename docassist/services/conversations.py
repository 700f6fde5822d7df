"""Tenant-scoped persistence for conversations and their ordered messages."""

import uuid
from dataclasses import dataclass

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload
from uuid_extensions import uuid7

from docassist.config.db import tenant_session
from docassist.models.base import utcnow
from docassist.models.conversation import (
    TITLE_MAX_LENGTH,
    Conversation,
    Message,
    MessageRole,
)
from docassist.utils.logging_config import logger

DEFAULT_TITLE = "New conversation"


class ConversationNotFoundError(LookupError):
    """The conversation does not exist for this tenant."""


@dataclass(frozen=True)
class Exchange:
    conversation: Conversation
    created: bool


def derive_title(message: str) -> str:
    """Title for a new conversation: the first message, whitespace collapsed and truncated."""
    title = " ".join(message.split())
    return title[:TITLE_MAX_LENGTH] if title else DEFAULT_TITLE


class ConversationStore:
    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession], max_attempts: int = 5
    ):
        self._session_factory = session_factory
        self.max_attempts = max_attempts

    async def get(
        self,
        conversation_id: uuid.UUID,
        tenant_id: uuid.UUID,
        with_messages: bool = False,
    ) -> Conversation | None:
        query = select(Conversation).where(
            Conversation.id == conversation_id, Conversation.tenant_id == tenant_id
        )
        if with_messages:
            query = query.options(selectinload(Conversation.messages))
        async with tenant_session(self._session_factory, tenant_id) as session:
            return await session.scalar(query)

    async def list(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID | None = None,
        project_id: uuid.UUID | None = None,
        limit: int = 50,
    ) -> list[Conversation]:
        query = select(Conversation).where(Conversation.tenant_id == tenant_id)
        if user_id is not None:
            query = query.where(Conversation.user_id == user_id)
        if project_id is not None:
            query = query.where(Conversation.project_id == project_id)
        query = query.order_by(Conversation.updated_at.desc()).limit(limit)
        async with tenant_session(self._session_factory, tenant_id) as session:
            return list((await session.scalars(query)).all())

    async def record_exchange(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        user_message: str,
        assistant_message: str,
        conversation_id: uuid.UUID | None = None,
        project_id: uuid.UUID | None = None,
    ) -> Exchange:
        """
        Append one user/assistant pair in a single transaction, creating the
        conversation first when no id is given. Either both messages are
        stored or neither is.

        Concurrent turns on one conversation can claim the same position; the
        unique constraint rejects the loser, which re-reads and tries again.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._append(
                    tenant_id,
                    user_id,
                    user_message,
                    assistant_message,
                    conversation_id,
                    project_id,
                )
            except IntegrityError:
                if conversation_id is None or attempt == self.max_attempts:
                    raise
                logger.debug(
                    f"Position conflict appending to conversation {conversation_id} "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
        raise AssertionError("max_attempts must be at least 1")

    async def _append(
        self,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        user_message: str,
        assistant_message: str,
        conversation_id: uuid.UUID | None,
        project_id: uuid.UUID | None,
    ) -> Exchange:
        async with tenant_session(self._session_factory, tenant_id) as session:
            if conversation_id is None:
                conversation = Conversation(
                    id=uuid7(),
                    tenant_id=tenant_id,
                    user_id=user_id,
                    project_id=project_id,
                    title=derive_title(user_message),
                )
                session.add(conversation)
                next_position = 0
                created = True
            else:
                conversation = await session.scalar(
                    select(Conversation).where(
                        Conversation.id == conversation_id,
                        Conversation.tenant_id == tenant_id,
                    )
                )
                if conversation is None:
                    raise ConversationNotFoundError(str(conversation_id))
                next_position = await session.scalar(
                    select(func.coalesce(func.max(Message.position) + 1, 0)).where(
                        Message.conversation_id == conversation.id,
                        Message.tenant_id == tenant_id,
                    )
                )
                conversation.updated_at = utcnow()
                created = False

            session.add_all(
                [
                    Message(
                        tenant_id=tenant_id,
                        conversation_id=conversation.id,
                        position=next_position,
                        role=MessageRole.USER,
                        content=user_message,
                    ),
                    Message(
                        tenant_id=tenant_id,
                        conversation_id=conversation.id,
                        position=next_position + 1,
                        role=MessageRole.ASSISTANT,
                        content=assistant_message,
                    ),
                ]
            )
            await session.commit()

        if created:
            logger.info(f"Created conversation {conversation.id} for tenant {tenant_id}")
        return Exchange(conversation=conversation, created=created)

    async def delete(self, conversation_id: uuid.UUID, tenant_id: uuid.UUID) -> Conversation:
        async with tenant_session(self._session_factory, tenant_id) as session:
            conversation = await session.scalar(
                select(Conversation).where(
                    Conversation.id == conversation_id, Conversation.tenant_id == tenant_id
                )
            )
            if conversation is None:
                raise ConversationNotFoundError(str(conversation_id))
            await session.execute(
                delete(Message).where(
                    Message.conversation_id == conversation_id,
                    Message.tenant_id == tenant_id,
                )
            )
            await session.execute(
                delete(Conversation).where(
                    Conversation.id == conversation_id, Conversation.tenant_id == tenant_id
                )
            )
            await session.commit()
            return conversation
