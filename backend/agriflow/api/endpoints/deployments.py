"""
Deployment API endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from agriflow.api.deps import get_ml_client
from agriflow.api.errors import to_http_exception
from agriflow.core.database import get_db
from agriflow.core.exceptions import OrchestrationError
from agriflow.core.security import Principal, get_current_principal, require_operator
from agriflow.schemas.deployment import (
    DeploymentRequest,
    DeploymentResponse,
    DeploymentListResponse,
)
from agriflow.services.deployment_service import DeploymentService
from agriflow.services.ml_service import MLServiceClient

router = APIRouter()


def get_deployment_service(
    db: Session = Depends(get_db),
    ml_client: MLServiceClient = Depends(get_ml_client),
) -> DeploymentService:
    """Dependency to get DeploymentService instance."""
    return DeploymentService(db, ml_client)


@router.post("/", response_model=DeploymentResponse, status_code=201)
def deploy_best_model(
    request: DeploymentRequest,
    service: DeploymentService = Depends(get_deployment_service),
    _: Principal = Depends(require_operator),
) -> DeploymentResponse:
    """
    Publish the current best model of a dataset.
    """
    try:
        record = service.deploy(request.dataset_id)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return DeploymentResponse.model_validate(record)


@router.get("/", response_model=DeploymentListResponse)
async def list_deployments(
    dataset_id: Annotated[int | None, Query(description="Filter by dataset")] = None,
    page: Annotated[int, Query(ge=1, description="Page number")] = 1,
    page_size: Annotated[int, Query(ge=1, le=100, description="Items per page")] = 10,
    service: DeploymentService = Depends(get_deployment_service),
    _: Principal = Depends(get_current_principal),
) -> DeploymentListResponse:
    """
    List deployment records, newest first.
    """
    result = service.list_deployments(dataset_id=dataset_id, page=page, page_size=page_size)
    return DeploymentListResponse(
        items=[DeploymentResponse.model_validate(r) for r in result["items"]],
        total=result["total"],
        page=result["page"],
        page_size=result["page_size"],
        pages=result["pages"],
    )
