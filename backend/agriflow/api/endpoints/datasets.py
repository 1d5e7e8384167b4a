"""
Dataset API endpoints.

Handles dataset creation, listing, retrieval, and the lifecycle operations
(auto-annotation, validation, augmentation).
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Query
from sqlalchemy.orm import Session

from agriflow.api.deps import get_ml_client
from agriflow.api.errors import to_http_exception
from agriflow.core.database import get_db
from agriflow.core.exceptions import OrchestrationError
from agriflow.core.security import Principal, get_current_principal, require_operator
from agriflow.models.dataset import DatasetGroup, DatasetStatus
from agriflow.schemas.dataset import (
    DatasetCreate,
    AutoAnnotateRequest,
    AugmentRequest,
    DatasetResponse,
    DatasetListResponse,
)
from agriflow.services.dataset_service import DatasetService
from agriflow.services.ml_service import MLServiceClient

router = APIRouter()


def get_dataset_service(
    db: Session = Depends(get_db),
    ml_client: MLServiceClient = Depends(get_ml_client),
) -> DatasetService:
    """Dependency to get DatasetService instance."""
    return DatasetService(db, ml_client)


@router.post("/", response_model=DatasetResponse, status_code=201)
def create_dataset(
    dataset_data: DatasetCreate,
    service: DatasetService = Depends(get_dataset_service),
    _: Principal = Depends(require_operator),
) -> DatasetResponse:
    """
    Create a dataset.

    Collects the images of the given clients over the date range into a
    new RAW dataset.
    """
    try:
        dataset = service.create_dataset(dataset_data)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return DatasetResponse.model_validate(dataset)


@router.get("/", response_model=DatasetListResponse)
async def list_datasets(
    page: Annotated[int, Query(ge=1, description="Page number")] = 1,
    page_size: Annotated[int, Query(ge=1, le=100, description="Items per page")] = 10,
    status: Annotated[DatasetStatus | None, Query(description="Filter by status")] = None,
    group: Annotated[DatasetGroup | None, Query(description="Filter by taxonomy group")] = None,
    service: DatasetService = Depends(get_dataset_service),
    _: Principal = Depends(get_current_principal),
) -> DatasetListResponse:
    """
    List all datasets with pagination.
    """
    result = service.list_datasets(
        page=page,
        page_size=page_size,
        status=status,
        group=group.value if group else None,
    )
    return DatasetListResponse(
        items=[DatasetResponse.model_validate(d) for d in result["items"]],
        total=result["total"],
        page=result["page"],
        page_size=result["page_size"],
        pages=result["pages"],
    )


@router.get("/{dataset_id}", response_model=DatasetResponse)
async def get_dataset(
    dataset_id: int,
    service: DatasetService = Depends(get_dataset_service),
    _: Principal = Depends(get_current_principal),
) -> DatasetResponse:
    """
    Get a specific dataset by ID.
    """
    dataset = service.get_dataset(dataset_id)
    if not dataset:
        raise HTTPException(status_code=404, detail="Dataset not found")
    return DatasetResponse.model_validate(dataset)


@router.post("/{dataset_id}/auto-annotate", response_model=DatasetResponse)
def auto_annotate_dataset(
    dataset_id: int,
    request: AutoAnnotateRequest,
    service: DatasetService = Depends(get_dataset_service),
    _: Principal = Depends(require_operator),
) -> DatasetResponse:
    """
    Auto-annotate a RAW dataset with a pretrained model of its group.
    """
    try:
        dataset = service.auto_annotate(dataset_id, request.model_id, request.use_gpu)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return DatasetResponse.model_validate(dataset)


@router.post("/{dataset_id}/validate", response_model=DatasetResponse)
def validate_dataset(
    dataset_id: int,
    file: Annotated[UploadFile, File(description="Zip archive of validated label files")],
    service: DatasetService = Depends(get_dataset_service),
    _: Principal = Depends(require_operator),
) -> DatasetResponse:
    """
    Replace the auto-generated labels of a dataset with validated ones.

    The archive must contain exactly one ``.txt`` label file per image.
    """
    archive = file.file.read()
    try:
        dataset = service.validate_annotations(dataset_id, file.filename or "annotations.zip", archive)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return DatasetResponse.model_validate(dataset)


@router.post("/{dataset_id}/augment", response_model=DatasetResponse)
def augment_dataset(
    dataset_id: int,
    request: AugmentRequest,
    service: DatasetService = Depends(get_dataset_service),
    _: Principal = Depends(require_operator),
) -> DatasetResponse:
    """
    Augment a validated dataset.

    Can be repeated with other transformers; the dataset stays AUGMENTED.
    """
    try:
        dataset = service.augment(dataset_id, list(request.transformers))
    except OrchestrationError as e:
        raise to_http_exception(e)
    return DatasetResponse.model_validate(dataset)
