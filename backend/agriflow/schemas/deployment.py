"""
Deployment Pydantic schemas for request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

from agriflow.models.deployment import DeploymentStatus


class DeploymentRequest(BaseModel):
    """Schema for a deployment request."""

    dataset_id: int = Field(..., description="Dataset whose best model is deployed")


class DeploymentResponse(BaseModel):
    """Schema for deployment record response."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Record ID")
    dataset_id: int = Field(..., description="Dataset ID")
    dataset_name: str = Field(..., description="Dataset name")
    dataset_group: str = Field(..., description="Dataset taxonomy group")
    model_path: Optional[str] = Field(None, description="Model artifact reference")
    storage_uri: Optional[str] = Field(None, description="Published location")
    metric: str = Field(..., description="Selection metric")
    score: float = Field(..., description="Recorded score")
    status: DeploymentStatus = Field(..., description="Record status")
    deployed_at: datetime = Field(..., description="Deployment timestamp")


class DeploymentListResponse(BaseModel):
    """Schema for paginated deployment history."""

    items: list[DeploymentResponse] = Field(..., description="Deployment records, newest first")
    total: int = Field(..., description="Total number of records")
    page: int = Field(..., description="Current page number")
    page_size: int = Field(..., description="Number of items per page")
    pages: int = Field(..., description="Total number of pages")
