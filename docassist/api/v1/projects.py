"""Project-level operations owned by this service: the deletion cascade."""

import uuid

from fastapi import APIRouter, Depends

from docassist.api.deps import get_current_principal, get_services
from docassist.models.audit_log import AuditAction
from docassist.schemas.document import ProjectDeleteResponse
from docassist.services.audit import AuditEvent
from docassist.services.container import Services
from docassist.utils.jwt_manager import Principal

router = APIRouter()


@router.delete("/{project_id}", response_model=ProjectDeleteResponse)
async def delete_project(
    project_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    """Delete every document of the project and their chunks."""
    deletion = await services.documents.delete_project(project_id, principal.tenant_id)
    await services.audit.record(
        AuditEvent(
            actor_id=principal.user_id,
            action=AuditAction.DELETE_PROJECT,
            target=str(project_id),
            tenant_id=principal.tenant_id,
            target_id=str(project_id),
            details={
                "documents_deleted": deletion.documents_deleted,
                "vectors_deleted": deletion.vectors_deleted,
            },
        )
    )
    return deletion
