from typing import Any

from fastapi import APIRouter, Depends

from docassist.api.deps import get_current_principal, get_metrics
from docassist.services.metrics import MetricsCollector
from docassist.utils.jwt_manager import Principal

router = APIRouter()


@router.get("")
async def get_metrics_snapshot(
    _: Principal = Depends(get_current_principal),
    metrics: MetricsCollector = Depends(get_metrics),
) -> dict[str, Any]:
    return metrics.snapshot()
