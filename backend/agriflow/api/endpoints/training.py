"""
Training API endpoints.

Handles training submissions and the latest training instance lookup.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from agriflow.api.deps import get_ml_client
from agriflow.api.errors import to_http_exception
from agriflow.core.database import get_db
from agriflow.core.exceptions import OrchestrationError
from agriflow.core.security import Principal, get_current_principal, require_operator
from agriflow.models.instance import InstanceKind
from agriflow.schemas.instance import InstanceResponse, LatestInstanceResponse, TrainingSubmission
from agriflow.services.instance_service import InstanceService
from agriflow.services.ml_service import MLServiceClient
from agriflow.services.training_service import TrainingService

router = APIRouter()


def get_training_service(
    db: Session = Depends(get_db),
    ml_client: MLServiceClient = Depends(get_ml_client),
) -> TrainingService:
    """Dependency to get TrainingService instance."""
    return TrainingService(db, ml_client)


def get_instance_service(db: Session = Depends(get_db)) -> InstanceService:
    """Dependency to get InstanceService instance."""
    return InstanceService(db)


def latest_instance_response(
    service: InstanceService,
    dataset_id: int | None,
    kind: InstanceKind,
) -> LatestInstanceResponse:
    """Build the latest-instance lookup response; a missing instance is not an error."""
    info = service.get_latest_instance_info(dataset_id, kind)
    if info is None:
        return LatestInstanceResponse(found=False)
    return LatestInstanceResponse(found=True, **info)


@router.post("/", response_model=InstanceResponse, status_code=201)
def submit_training(
    submission: TrainingSubmission,
    service: TrainingService = Depends(get_training_service),
    _: Principal = Depends(require_operator),
) -> InstanceResponse:
    """
    Submit a training batch.

    Creates one QUEUED task per hyperparameter set, in order, and hands the
    batch to the ML service.
    """
    try:
        instance = service.submit_training(submission)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return InstanceResponse.model_validate(instance)


@router.get("/latest", response_model=LatestInstanceResponse)
async def get_latest_training_instance(
    dataset_id: Annotated[int | None, Query(description="Restrict to one dataset")] = None,
    service: InstanceService = Depends(get_instance_service),
    _: Principal = Depends(get_current_principal),
) -> LatestInstanceResponse:
    """
    Get the most recently submitted training instance.
    """
    return latest_instance_response(service, dataset_id, InstanceKind.TRAINING)
