"""
Testing API endpoints.

Handles testing submissions and the latest testing instance lookup.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from agriflow.api.endpoints.training import (
    get_instance_service,
    get_training_service,
    latest_instance_response,
)
from agriflow.api.errors import to_http_exception
from agriflow.core.exceptions import OrchestrationError
from agriflow.core.security import Principal, get_current_principal, require_operator
from agriflow.models.instance import InstanceKind
from agriflow.schemas.instance import InstanceResponse, LatestInstanceResponse, TestingSubmission
from agriflow.services.instance_service import InstanceService
from agriflow.services.training_service import TrainingService

router = APIRouter()


@router.post("/", response_model=InstanceResponse, status_code=201)
def submit_testing(
    submission: TestingSubmission,
    service: TrainingService = Depends(get_training_service),
    _: Principal = Depends(require_operator),
) -> InstanceResponse:
    """
    Test every completed model of the dataset's latest training instance.
    """
    try:
        instance = service.submit_testing(submission)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return InstanceResponse.model_validate(instance)


@router.get("/latest", response_model=LatestInstanceResponse)
async def get_latest_testing_instance(
    dataset_id: Annotated[int | None, Query(description="Restrict to one dataset")] = None,
    service: InstanceService = Depends(get_instance_service),
    _: Principal = Depends(get_current_principal),
) -> LatestInstanceResponse:
    """
    Get the most recently submitted testing instance.
    """
    return latest_instance_response(service, dataset_id, InstanceKind.TESTING)
