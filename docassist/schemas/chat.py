import uuid
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from docassist.models.conversation import MessageRole

SSE_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class ChatMessage(BaseModel):
    """Body of POST /chat/stream. Accepts camelCase keys as sent by browsers."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1)
    conversation_id: Optional[uuid.UUID] = Field(None, alias="conversationId")
    project_id: Optional[uuid.UUID] = Field(None, alias="projectId")
    project_name: Optional[str] = Field(None, alias="projectName")


class ConversationIdEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["conversation_id"] = "conversation_id"
    conversation_id: str = Field(..., alias="conversationId")


class ContentEvent(BaseModel):
    type: Literal["content"] = "content"
    content: str


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str


class DoneEvent(BaseModel):
    """Terminal marker; encoded as the bare `[DONE]` sentinel."""

    type: Literal["done"] = "done"


StreamEvent = Union[ConversationIdEvent, ContentEvent, ErrorEvent, DoneEvent]

_payload_adapter = TypeAdapter(
    Annotated[
        Union[ConversationIdEvent, ContentEvent, ErrorEvent],
        Field(discriminator="type"),
    ]
)


def encode_sse(event: StreamEvent) -> str:
    if isinstance(event, DoneEvent):
        return f"{SSE_PREFIX}{DONE_SENTINEL}\n\n"
    return f"{SSE_PREFIX}{event.model_dump_json(by_alias=True)}\n\n"


def decode_sse_line(line: str) -> Optional[StreamEvent]:
    """Parse one line of an event stream; lines that are not data lines yield None."""
    if not line.startswith(SSE_PREFIX):
        return None
    payload = line[len(SSE_PREFIX) :].strip()
    if payload == DONE_SENTINEL:
        return DoneEvent()
    return _payload_adapter.validate_json(payload)


class MessageResponse(BaseModel):
    """Pydantic model for serializing SQLAlchemy Message objects."""

    id: uuid.UUID
    position: int
    role: MessageRole
    content: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ConversationResponse(BaseModel):
    id: uuid.UUID
    title: str
    project_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ConversationDetailResponse(ConversationResponse):
    messages: List[MessageResponse]
