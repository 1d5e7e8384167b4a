"""
Best model selection API endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from agriflow.api.errors import to_http_exception
from agriflow.core.database import get_db
from agriflow.core.exceptions import OrchestrationError
from agriflow.core.security import Principal, get_current_principal, require_operator
from agriflow.schemas.selection import (
    SelectionRequest,
    BestModelResponse,
    SelectionResponse,
    CurrentSelectionResponse,
)
from agriflow.services.selection_service import SelectionService

router = APIRouter()


def get_selection_service(db: Session = Depends(get_db)) -> SelectionService:
    """Dependency to get SelectionService instance."""
    return SelectionService(db)


@router.post("/", response_model=SelectionResponse)
async def select_best_model(
    request: SelectionRequest,
    service: SelectionService = Depends(get_selection_service),
    _: Principal = Depends(require_operator),
) -> SelectionResponse:
    """
    Select the best model of a dataset from its latest testing instance.

    A dataset without a usable test result is not an error: the outcome
    says why nothing was selected.
    """
    try:
        outcome, selection = service.select_best(request.dataset_id, request.metric)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return SelectionResponse(
        outcome=outcome,
        best_model=BestModelResponse.model_validate(selection) if selection else None,
    )


@router.get("/{dataset_id}", response_model=CurrentSelectionResponse)
async def get_current_selection(
    dataset_id: int,
    service: SelectionService = Depends(get_selection_service),
    _: Principal = Depends(get_current_principal),
) -> CurrentSelectionResponse:
    """
    Get the current best model of a dataset.
    """
    selection = service.get_current_selection(dataset_id)
    if selection is None:
        return CurrentSelectionResponse(found=False)
    return CurrentSelectionResponse(
        found=True,
        best_model=BestModelResponse.model_validate(selection),
        consistent=service.verify_selection(dataset_id),
    )
