"""
Streaming chat turns: retrieve, generate, stream, then persist the exchange.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from langchain_core.runnables import Runnable

from docassist.agent.constructor import stream_tokens
from docassist.models.audit_log import AuditAction
from docassist.models.conversation import Conversation
from docassist.schemas.chat import (
    ContentEvent,
    ConversationIdEvent,
    DoneEvent,
    ErrorEvent,
    StreamEvent,
)
from docassist.services.analytics import AnalyticsAggregator, run_analytics_update
from docassist.services.audit import AuditEvent, AuditTrail
from docassist.services.conversations import ConversationNotFoundError, ConversationStore
from docassist.services.metrics import MetricsCollector
from docassist.services.vector_store import require_tenant
from docassist.utils.logging_config import logger

GENERATION_ERROR = "An error occurred while processing your request"
TIMEOUT_ERROR = "The response took too long to generate"
PERSISTENCE_ERROR = "The response could not be saved"


@dataclass(frozen=True)
class ChatRequest:
    message: str
    tenant_id: uuid.UUID
    user_id: uuid.UUID
    conversation_id: Optional[uuid.UUID] = None
    project_id: Optional[uuid.UUID] = None
    project_name: Optional[str] = None


@dataclass(frozen=True)
class ChatTurn:
    request: ChatRequest
    conversation: Optional[Conversation] = None


class ChatStreamingService:
    def __init__(
        self,
        runnable: Runnable,
        conversations: ConversationStore,
        analytics: AnalyticsAggregator,
        metrics: MetricsCollector,
        audit: AuditTrail,
        generation_timeout: float = 120.0,
    ):
        self._runnable = runnable
        self._conversations = conversations
        self._analytics = analytics
        self._metrics = metrics
        self._audit = audit
        self.generation_timeout = generation_timeout

    async def open_turn(self, request: ChatRequest) -> ChatTurn:
        """
        Validate a chat request before any event is streamed, so an unknown
        conversation can still be reported as a plain 404.
        """
        require_tenant(request.tenant_id)
        if request.conversation_id is None:
            return ChatTurn(request=request)
        conversation = await self._conversations.get(
            request.conversation_id, request.tenant_id
        )
        if conversation is None:
            raise ConversationNotFoundError(str(request.conversation_id))
        return ChatTurn(request=request, conversation=conversation)

    async def stream(self, turn: ChatTurn) -> AsyncIterator[StreamEvent]:
        """
        Yield content events as the model produces them, then at most one
        conversation id or error event, then always a final DoneEvent.

        Nothing is persisted unless generation completes. If the consumer
        closes the stream early the model stream is closed and the turn is
        dropped without an error event.
        """
        request = turn.request
        fragments: list[str] = []
        tokens = stream_tokens(self._runnable, request.message, str(request.tenant_id))
        deadline = asyncio.get_running_loop().time() + self.generation_timeout

        try:
            try:
                while True:
                    try:
                        async with asyncio.timeout_at(deadline):
                            fragment = await anext(tokens)
                    except StopAsyncIteration:
                        break
                    fragments.append(fragment)
                    yield ContentEvent(content=fragment)
            finally:
                await tokens.aclose()
        except (GeneratorExit, asyncio.CancelledError):
            self._metrics.increment("chat_cancelled")
            logger.info(f"Chat stream closed by client (tenant {request.tenant_id})")
            raise
        except TimeoutError:
            self._metrics.increment("chat_failed")
            logger.error(
                f"Chat generation exceeded {self.generation_timeout}s "
                f"(tenant {request.tenant_id})"
            )
            yield ErrorEvent(error=TIMEOUT_ERROR)
            yield DoneEvent()
            return
        except Exception as e:
            self._metrics.increment("chat_failed")
            logger.error(f"Chat generation failed: {e}", exc_info=True)
            yield ErrorEvent(error=GENERATION_ERROR)
            yield DoneEvent()
            return

        answer = "".join(fragments)
        try:
            exchange = await self._conversations.record_exchange(
                tenant_id=request.tenant_id,
                user_id=request.user_id,
                user_message=request.message,
                assistant_message=answer,
                conversation_id=request.conversation_id,
                project_id=request.project_id,
            )
        except Exception as e:
            self._metrics.increment("chat_failed")
            logger.error(f"Failed to persist chat exchange: {e}", exc_info=True)
            yield ErrorEvent(error=PERSISTENCE_ERROR)
            yield DoneEvent()
            return

        # Bookkeeping runs before the next yield: the client may disconnect at any yield.
        conversation = exchange.conversation
        if exchange.created:
            await self._audit.record(
                AuditEvent(
                    actor_id=request.user_id,
                    action=AuditAction.CREATE_CONVERSATION,
                    target=conversation.title,
                    tenant_id=request.tenant_id,
                    target_id=str(conversation.id),
                )
            )
        await run_analytics_update(
            self._analytics.record_conversation(
                request.tenant_id,
                conversation.title,
                2,
                project_id=request.project_id,
                project_name=request.project_name,
                conversation_id=conversation.id,
                new_conversation=exchange.created,
            ),
            "chat analytics",
        )
        self._metrics.increment("chat_completed")
        if exchange.created:
            yield ConversationIdEvent(conversation_id=str(conversation.id))
        yield DoneEvent()
