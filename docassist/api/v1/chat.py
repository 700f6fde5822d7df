import uuid
from contextlib import aclosing
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from docassist.api.deps import get_current_principal, get_services
from docassist.models.audit_log import AuditAction
from docassist.schemas.chat import (
    ChatMessage,
    ConversationDetailResponse,
    ConversationResponse,
    encode_sse,
)
from docassist.services.audit import AuditEvent
from docassist.services.chat import ChatRequest
from docassist.services.container import Services
from docassist.services.conversations import ConversationNotFoundError
from docassist.utils.jwt_manager import Principal

router = APIRouter()


@router.post("/stream")
async def send_message(
    content: ChatMessage,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    """
    Streams the assistant's answer as server-sent events and saves the
    exchange once the answer is complete.
    """
    try:
        turn = await services.chat.open_turn(
            ChatRequest(
                message=content.message,
                tenant_id=principal.tenant_id,
                user_id=principal.user_id,
                conversation_id=content.conversation_id,
                project_id=content.project_id,
                project_name=content.project_name,
            )
        )
    except ConversationNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Conversation not found") from None

    async def event_stream():
        async with aclosing(services.chat.stream(turn)) as events:
            async for event in events:
                yield encode_sse(event)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/conversations", response_model=List[ConversationResponse])
async def list_conversations(
    project_id: Optional[uuid.UUID] = None,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    return await services.conversations.list(
        principal.tenant_id, user_id=principal.user_id, project_id=project_id
    )


@router.get("/conversations/{conversation_id}", response_model=ConversationDetailResponse)
async def get_conversation(
    conversation_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    conversation = await services.conversations.get(
        conversation_id, principal.tenant_id, with_messages=True
    )
    if conversation is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Conversation not found")
    return conversation


@router.delete("/conversations/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    try:
        conversation = await services.conversations.delete(
            conversation_id, principal.tenant_id
        )
    except ConversationNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Conversation not found") from None

    await services.audit.record(
        AuditEvent(
            actor_id=principal.user_id,
            action=AuditAction.DELETE_CONVERSATION,
            target=conversation.title,
            tenant_id=principal.tenant_id,
            target_id=str(conversation_id),
        )
    )
