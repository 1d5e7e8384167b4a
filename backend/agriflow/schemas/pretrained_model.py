"""
Pretrained model Pydantic schemas for request/response validation.
"""

from datetime import datetime

from pydantic import BaseModel, Field, ConfigDict

from agriflow.models.dataset import DatasetGroup


class PretrainedModelCreate(BaseModel):
    """Schema for registering a pretrained model."""

    name: str = Field(..., min_length=1, max_length=255, description="Model name")
    group: DatasetGroup = Field(..., description="Taxonomy group the model detects")
    model_path: str = Field(..., min_length=1, max_length=512, description="Artifact reference")


class PretrainedModelResponse(PretrainedModelCreate):
    """Schema for pretrained model response."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Model ID")
    is_active: bool = Field(..., description="Whether the model can annotate")
    created_at: datetime = Field(..., description="Registration timestamp")
