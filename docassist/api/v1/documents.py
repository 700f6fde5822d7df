"""API endpoints for document management."""

import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Form, HTTPException, UploadFile, status
from starlette.concurrency import run_in_threadpool

from docassist.api.deps import get_current_principal, get_services
from docassist.models.audit_log import AuditAction
from docassist.models.document import DocumentStatus
from docassist.schemas.document import (
    DocumentDeleteResponse,
    DocumentRename,
    DocumentResponse,
    DocumentUploadResponse,
)
from docassist.services.analytics import run_analytics_update
from docassist.services.audit import AuditEvent
from docassist.services.container import Services
from docassist.services.documents import DocumentNotFoundError
from docassist.services.ingestion import ingest_document, ingest_in_background
from docassist.settings import settings
from docassist.utils.file_validator import extract_pdf_text, read_limited, validate_pdf
from docassist.utils.jwt_manager import Principal
from docassist.utils.logging_config import logger

router = APIRouter()


@router.post(
    "/upload",
    status_code=202,
    response_model=DocumentUploadResponse,
    summary="Upload a document for ingestion",
    description="Accepts a PDF file, stores its text, and queues it for chunking and embedding.",
)
async def upload_document(
    file: UploadFile,
    background_tasks: BackgroundTasks,
    project_id: Optional[uuid.UUID] = Form(None),
    project_name: Optional[str] = Form(None),
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
) -> DocumentUploadResponse:
    await validate_pdf(file)
    data = await read_limited(file)
    text = await run_in_threadpool(extract_pdf_text, data)  # PyMuPDF parsing is CPU bound
    filename = file.filename or "document.pdf"

    document = await services.documents.create(
        tenant_id=principal.tenant_id,
        filename=filename,
        content=text,
        size=len(data),
        project_id=project_id,
        project_name=project_name,
    )
    await services.audit.record(
        AuditEvent(
            actor_id=principal.user_id,
            action=AuditAction.UPLOAD_DOCUMENT,
            target=filename,
            tenant_id=principal.tenant_id,
            target_id=str(document.id),
            details={"size": len(data), "project_id": str(project_id) if project_id else None},
        )
    )

    task_id = None
    if settings.INGESTION_EAGER:
        background_tasks.add_task(
            ingest_in_background,
            services.ingestion,
            document.id,
            principal.tenant_id,
            project_name,
        )
    else:
        try:
            task = ingest_document.delay(  # pyright: ignore[reportFunctionMemberAccess]
                str(document.id), str(principal.tenant_id), project_name
            )
        except Exception as e:
            logger.error(f"Failed to queue ingestion for document {document.id}: {e}")
            if await services.documents.set_status(
                document.id, principal.tenant_id, DocumentStatus.ERROR
            ):
                await run_analytics_update(
                    services.analytics.mark_failed(principal.tenant_id, project_id, project_name),
                    "ingestion failure analytics",
                )
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Failed to queue the document for ingestion.",
            ) from e
        task_id = task.id

    return DocumentUploadResponse(
        id=document.id, filename=document.filename, status=document.status, task_id=task_id
    )


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    try:
        return await services.documents.get(document_id, principal.tenant_id)
    except DocumentNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Document not found") from None


@router.patch("/{document_id}", response_model=DocumentResponse)
async def rename_document(
    document_id: uuid.UUID,
    body: DocumentRename,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    try:
        document = await services.documents.rename(
            document_id, principal.tenant_id, body.filename
        )
    except DocumentNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Document not found") from None
    except ValueError as e:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(e)) from e

    await services.audit.record(
        AuditEvent(
            actor_id=principal.user_id,
            action=AuditAction.UPDATE_DOCUMENT,
            target=document.filename,
            tenant_id=principal.tenant_id,
            target_id=str(document.id),
        )
    )
    return document


@router.delete("/{document_id}", response_model=DocumentDeleteResponse)
async def delete_document(
    document_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    try:
        deleted = await services.documents.delete(document_id, principal.tenant_id)
    except DocumentNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Document not found") from None

    await services.audit.record(
        AuditEvent(
            actor_id=principal.user_id,
            action=AuditAction.DELETE_DOCUMENT,
            target=deleted.filename,
            tenant_id=principal.tenant_id,
            target_id=str(deleted.id),
            details={"vectors_deleted": deleted.vectors_deleted},
        )
    )
    return deleted
