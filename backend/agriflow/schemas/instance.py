"""
Instance Pydantic schemas for request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

from agriflow.models.instance import InstanceKind
from agriflow.models.task import TaskStatus
from agriflow.schemas.task import TaskResponse


class SplitRatios(BaseModel):
    """Train/validation/test split of a dataset."""

    train: float = Field(0.7, ge=0.0, le=1.0, description="Training fraction")
    val: float = Field(0.2, ge=0.0, le=1.0, description="Validation fraction")
    test: float = Field(0.1, ge=0.0, le=1.0, description="Test fraction")


class TrainingSubmission(BaseModel):
    """Schema for submitting a batch of training runs."""

    dataset_id: int = Field(..., description="Dataset to train on")
    hyperparameter_sets: list[dict[str, int | float]] = Field(
        ...,
        min_length=1,
        description="One hyperparameter set per training task",
    )
    split_ratios: SplitRatios = Field(default_factory=SplitRatios, description="Dataset split")
    use_gpu: bool = Field(False, description="Train on GPU")


class TestingSubmission(BaseModel):
    """Schema for testing every completed model of the latest training instance."""

    __test__ = False

    dataset_id: int = Field(..., description="Dataset whose models are tested")
    use_gpu: bool = Field(False, description="Test on GPU")


class InstanceResponse(BaseModel):
    """Schema for instance response."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Instance ID")
    kind: InstanceKind = Field(..., description="TRAINING or TESTING")
    dataset_id: int = Field(..., description="Dataset ID")
    use_gpu: bool = Field(..., description="GPU requested")
    split_ratios: Optional[SplitRatios] = Field(None, description="Dataset split")
    created_at: datetime = Field(..., description="Submission timestamp")
    task_ids: list[int] = Field(..., description="Task IDs ordered by queue position")


class AggregateStatusResponse(BaseModel):
    """Schema for the live aggregate view of an instance."""

    instance_id: int = Field(..., description="Instance ID")
    dataset_id: int = Field(..., description="Dataset ID")
    kind: InstanceKind = Field(..., description="TRAINING or TESTING")
    status: TaskStatus = Field(..., description="Aggregate status")
    progress_percentage: float = Field(..., description="Terminal task percentage")
    per_status_counts: dict[TaskStatus, int] = Field(..., description="Task count per status")
    current_task_id: Optional[int] = Field(None, description="First IN_PROGRESS task by position")
    tasks: list[TaskResponse] = Field(..., description="Tasks ordered by queue position")


class LatestInstanceResponse(BaseModel):
    """
    Schema for a latest-instance lookup.

    ``found`` is false when no instance exists yet; that is a normal
    outcome, not an error.
    """

    found: bool = Field(..., description="Whether an instance exists")
    instance_id: Optional[int] = Field(None, description="Latest instance ID")
    dataset_id: Optional[int] = Field(None, description="Dataset ID")
    dataset_name: Optional[str] = Field(None, description="Dataset name")
    dataset_group: Optional[str] = Field(None, description="Dataset taxonomy group")
    created_at: Optional[datetime] = Field(None, description="Submission timestamp")
