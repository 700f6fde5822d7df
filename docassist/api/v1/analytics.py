from fastapi import APIRouter, Depends

from docassist.api.deps import get_current_principal, get_services
from docassist.schemas.analytics import AnalyticsResponse
from docassist.services.container import Services
from docassist.utils.jwt_manager import Principal

router = APIRouter()


@router.get("", response_model=AnalyticsResponse)
async def get_analytics(
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    return await services.analytics.get_snapshot(principal.tenant_id)


@router.post("/reconcile", response_model=AnalyticsResponse)
async def reconcile_analytics(
    principal: Principal = Depends(get_current_principal),
    services: Services = Depends(get_services),
):
    """Recount the snapshot from the source tables."""
    return await services.analytics.reconcile(principal.tenant_id)
