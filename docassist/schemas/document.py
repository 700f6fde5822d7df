"""Pydantic schemas for document operations."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from docassist.models.document import DocumentStatus


class DocumentUploadResponse(BaseModel):
    """Response schema for a document upload."""

    document_id: uuid.UUID = Field(
        ...,
        description="The unique identifier for the uploaded document.",
        alias="id",
    )
    filename: str = Field(..., description="The name of the uploaded document.")
    status: DocumentStatus = Field(..., description="The current status of the document.")
    task_id: Optional[str] = Field(
        None, description="The ID of the background ingestion task, if queued on a worker."
    )
    model_config = {"from_attributes": True, "populate_by_name": True}


class DocumentResponse(BaseModel):
    id: uuid.UUID
    project_id: Optional[uuid.UUID] = None
    filename: str
    size: int
    status: DocumentStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DocumentRename(BaseModel):
    filename: str = Field(..., min_length=1, max_length=255)


class DocumentDeleteResponse(BaseModel):
    id: uuid.UUID
    filename: str
    vectors_deleted: int

    model_config = {"from_attributes": True}


class ProjectDeleteResponse(BaseModel):
    project_id: uuid.UUID
    documents_deleted: int
    vectors_deleted: int

    model_config = {"from_attributes": True}
