from typing import TypedDict


class ChatState(TypedDict):
    """The state of one retrieve-then-generate turn."""

    question: str
    tenant_id: str
    context: str
    answer: str
