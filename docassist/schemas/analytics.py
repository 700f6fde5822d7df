import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class ProjectRollup(BaseModel):
    project_id: str
    project_name: str
    document_count: int
    vectorized_count: int


class DayCount(BaseModel):
    date: str
    count: int


class RecentDocument(BaseModel):
    filename: str
    vectorized: bool
    created_at: datetime
    project_id: Optional[str] = None
    project_name: str


class RecentConversation(BaseModel):
    conversation_id: Optional[str] = None
    title: str
    messages_count: int
    updated_at: datetime
    project_id: Optional[str] = None
    project_name: str


class AnalyticsResponse(BaseModel):
    """Pydantic model for serializing an AnalyticsSnapshot row."""

    tenant_id: uuid.UUID
    total_documents: int
    total_messages: int
    total_conversations: int
    total_projects: int
    total_users: int
    documents_ready: int
    documents_processing: int
    documents_error: int
    documents_by_project: List[ProjectRollup]
    messages_by_day: List[DayCount]
    recent_documents: List[RecentDocument]
    recent_conversations: List[RecentConversation]
    processing_rate: int
    avg_messages_per_conversation: int
    avg_documents_per_project: int
    last_updated: datetime

    model_config = {"from_attributes": True}
