"""
Dataset Pydantic schemas for request/response validation.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict, computed_field

from agriflow.models.dataset import DatasetGroup, DatasetStatus
from agriflow.core import lifecycle
from agriflow.core.lifecycle import AugmentationTransformer, DatasetOperation


class DatasetCreate(BaseModel):
    """Schema for requesting a new dataset from client images."""

    name: str = Field(..., min_length=1, max_length=255, description="Dataset name")
    group: DatasetGroup = Field(..., description="Vegetable/fruit taxonomy group")
    start_date: date = Field(..., description="First day of the collection window")
    end_date: date = Field(..., description="Last day of the collection window")
    client_ids: list[int] = Field(
        ...,
        min_length=1,
        description="Clients whose images are collected",
    )


class AutoAnnotateRequest(BaseModel):
    """Schema for an auto-annotation request."""

    model_id: int = Field(..., description="Pretrained model used for annotation")
    use_gpu: bool = Field(False, description="Run annotation on GPU")


class AugmentRequest(BaseModel):
    """Schema for an augmentation request."""

    transformers: list[AugmentationTransformer] = Field(
        ...,
        min_length=1,
        description="Transformers to apply",
    )


class DatasetResponse(BaseModel):
    """Schema for dataset response."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Dataset ID")
    name: str = Field(..., description="Dataset name")
    group: DatasetGroup = Field(..., description="Taxonomy group")
    start_date: date = Field(..., description="Collection window start")
    end_date: date = Field(..., description="Collection window end")
    client_ids: list[int] = Field(..., description="Client IDs")
    image_count: int = Field(..., description="Number of images")
    status: DatasetStatus = Field(..., description="Lifecycle status")
    annotation_model_id: Optional[int] = Field(None, description="Annotation model ID")
    transformers: list[str] = Field(default_factory=list, description="Applied transformers")
    pending_operation: Optional[DatasetOperation] = Field(None, description="Operation running on the ML service")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")

    @computed_field
    @property
    def available_actions(self) -> list[DatasetOperation]:
        """Operations legal from the current status; none while an operation runs."""
        if self.pending_operation is not None:
            return []
        return lifecycle.available_actions(self.status)


class DatasetListResponse(BaseModel):
    """Schema for paginated dataset list response."""

    items: list[DatasetResponse] = Field(..., description="List of datasets")
    total: int = Field(..., description="Total number of datasets")
    page: int = Field(..., description="Current page number")
    page_size: int = Field(..., description="Number of items per page")
    pages: int = Field(..., description="Total number of pages")
