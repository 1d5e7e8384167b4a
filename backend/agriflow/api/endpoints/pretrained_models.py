"""
Pretrained model API endpoints.

Handles the registry of detection models used for auto-annotation.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from agriflow.api.errors import to_http_exception
from agriflow.core.database import get_db
from agriflow.core.exceptions import OrchestrationError
from agriflow.core.security import Principal, get_current_principal, require_admin
from agriflow.models.dataset import DatasetGroup
from agriflow.schemas.pretrained_model import PretrainedModelCreate, PretrainedModelResponse
from agriflow.services.pretrained_model_service import PretrainedModelService

router = APIRouter()


def get_pretrained_model_service(db: Session = Depends(get_db)) -> PretrainedModelService:
    """Dependency to get PretrainedModelService instance."""
    return PretrainedModelService(db)


@router.post("/", response_model=PretrainedModelResponse, status_code=201)
async def register_pretrained_model(
    model_data: PretrainedModelCreate,
    service: PretrainedModelService = Depends(get_pretrained_model_service),
    _: Principal = Depends(require_admin),
) -> PretrainedModelResponse:
    """
    Register a pretrained model for a taxonomy group.
    """
    model = service.register(model_data)
    return PretrainedModelResponse.model_validate(model)


@router.get("/", response_model=list[PretrainedModelResponse])
async def list_pretrained_models(
    group: Annotated[DatasetGroup | None, Query(description="Filter by taxonomy group")] = None,
    active_only: Annotated[bool, Query(description="Only list active models")] = False,
    service: PretrainedModelService = Depends(get_pretrained_model_service),
    _: Principal = Depends(get_current_principal),
) -> list[PretrainedModelResponse]:
    """
    List pretrained models.
    """
    models = service.list_models(group=group.value if group else None, active_only=active_only)
    return [PretrainedModelResponse.model_validate(m) for m in models]


@router.get("/{model_id}", response_model=PretrainedModelResponse)
async def get_pretrained_model(
    model_id: int,
    service: PretrainedModelService = Depends(get_pretrained_model_service),
    _: Principal = Depends(get_current_principal),
) -> PretrainedModelResponse:
    """
    Get a pretrained model by ID.
    """
    model = service.get(model_id)
    if not model:
        raise HTTPException(status_code=404, detail="Pretrained model not found")
    return PretrainedModelResponse.model_validate(model)


@router.post("/{model_id}/activate", response_model=PretrainedModelResponse)
async def activate_pretrained_model(
    model_id: int,
    service: PretrainedModelService = Depends(get_pretrained_model_service),
    _: Principal = Depends(require_admin),
) -> PretrainedModelResponse:
    """
    Allow a pretrained model to be used for annotation.
    """
    try:
        model = service.set_active(model_id, True)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return PretrainedModelResponse.model_validate(model)


@router.post("/{model_id}/deactivate", response_model=PretrainedModelResponse)
async def deactivate_pretrained_model(
    model_id: int,
    service: PretrainedModelService = Depends(get_pretrained_model_service),
    _: Principal = Depends(require_admin),
) -> PretrainedModelResponse:
    """
    Withdraw a pretrained model from annotation.
    """
    try:
        model = service.set_active(model_id, False)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return PretrainedModelResponse.model_validate(model)
