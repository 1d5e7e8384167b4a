"""
Instance API endpoints.

Serves the live aggregate view of training and testing instances.
"""

from fastapi import APIRouter, Depends

from agriflow.api.endpoints.training import get_instance_service, get_training_service
from agriflow.api.errors import to_http_exception
from agriflow.core.exceptions import OrchestrationError
from agriflow.core.security import Principal, get_current_principal, require_operator
from agriflow.models.instance import Instance
from agriflow.schemas.instance import AggregateStatusResponse, InstanceResponse
from agriflow.schemas.task import TaskResponse
from agriflow.services.instance_service import AggregateStatus, InstanceService
from agriflow.services.training_service import TrainingService

router = APIRouter()


def build_status_response(
    instance: Instance,
    status: AggregateStatus,
    service: InstanceService,
) -> AggregateStatusResponse:
    return AggregateStatusResponse(
        instance_id=instance.id,
        dataset_id=instance.dataset_id,
        kind=instance.kind,
        status=status.status,
        progress_percentage=status.progress_percentage,
        per_status_counts=status.per_status_counts,
        current_task_id=status.current_task_id,
        tasks=[TaskResponse.model_validate(t) for t in service.list_tasks(instance.id)],
    )


@router.get("/{instance_id}", response_model=InstanceResponse)
async def get_instance(
    instance_id: int,
    service: InstanceService = Depends(get_instance_service),
    _: Principal = Depends(get_current_principal),
) -> InstanceResponse:
    """
    Get an instance by ID.
    """
    try:
        instance = service.require_instance(instance_id)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return InstanceResponse.model_validate(instance)


@router.get("/{instance_id}/status", response_model=AggregateStatusResponse)
async def get_instance_status(
    instance_id: int,
    service: InstanceService = Depends(get_instance_service),
    _: Principal = Depends(get_current_principal),
) -> AggregateStatusResponse:
    """
    Get the aggregate status of an instance.

    Computed from the tasks on every call; clients poll this endpoint.
    """
    try:
        instance = service.require_instance(instance_id)
        status = service.get_aggregate_status(instance_id)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return build_status_response(instance, status, service)


@router.get("/{instance_id}/tasks", response_model=list[TaskResponse])
async def list_instance_tasks(
    instance_id: int,
    service: InstanceService = Depends(get_instance_service),
    _: Principal = Depends(get_current_principal),
) -> list[TaskResponse]:
    """
    List the tasks of an instance ordered by queue position.
    """
    try:
        service.require_instance(instance_id)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return [TaskResponse.model_validate(t) for t in service.list_tasks(instance_id)]


@router.post("/{instance_id}/sync", response_model=AggregateStatusResponse)
def sync_instance(
    instance_id: int,
    service: TrainingService = Depends(get_training_service),
    _: Principal = Depends(require_operator),
) -> AggregateStatusResponse:
    """
    Pull task statuses from the ML service, then return the aggregate status.
    """
    try:
        status = service.sync_instance(instance_id)
    except OrchestrationError as e:
        raise to_http_exception(e)
    instance = service.instances.require_instance(instance_id)
    return build_status_response(instance, status, service.instances)
