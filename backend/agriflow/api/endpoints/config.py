"""
Configuration API endpoints.

Exposes the settings the dashboard needs to drive its forms and polling.
"""

from fastapi import APIRouter

from agriflow.core.config import settings
from agriflow.core.lifecycle import AugmentationTransformer
from agriflow.models.dataset import DatasetGroup
from agriflow.models.selection import SelectionMetric
from agriflow.schemas.config import ClientConfigResponse

router = APIRouter()


@router.get("/client", response_model=ClientConfigResponse)
async def get_client_config() -> ClientConfigResponse:
    """
    Get the client configuration.
    """
    return ClientConfigResponse(
        poll_interval_seconds=settings.poll_interval_seconds,
        split_ratio_tolerance=settings.split_ratio_tolerance,
        task_max_runtime_minutes=settings.task_max_runtime_minutes,
        metrics=[m.value for m in SelectionMetric],
        transformers=[t.value for t in AugmentationTransformer],
        groups=[g.value for g in DatasetGroup],
    )
