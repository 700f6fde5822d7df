"""Exports all models for easy access."""

from .analytics import AnalyticsSnapshot
from .audit_log import AuditAction, AuditLog
from .base import Base, BaseModel, TenantScopedModel
from .chunk import Chunk
from .conversation import Conversation, Message, MessageRole
from .document import Document, DocumentStatus

__all__ = [
    "Base",
    "BaseModel",
    "TenantScopedModel",
    "AnalyticsSnapshot",
    "AuditAction",
    "AuditLog",
    "Chunk",
    "Conversation",
    "Message",
    "MessageRole",
    "Document",
    "DocumentStatus",
]
