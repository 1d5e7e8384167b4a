"""
Task Pydantic schemas for request/response validation.

Includes the payloads ML workers send back while a task runs.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, ConfigDict

from agriflow.models.task import TaskStatus


class TaskResponse(BaseModel):
    """Schema for task response."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Task ID")
    instance_id: int = Field(..., description="Owning instance ID")
    dataset_id: int = Field(..., description="Dataset ID")
    queue_position: int = Field(..., description="0-based position in the instance")
    status: TaskStatus = Field(..., description="Task status")
    hyperparameters: dict[str, int | float] = Field(..., description="Hyperparameters")
    results: Optional[dict[str, Any]] = Field(None, description="Final metrics")
    error_message: Optional[str] = Field(None, description="Worker error")
    progress: float = Field(..., description="Progress fraction in [0, 1]")
    current_epoch: Optional[int] = Field(None, description="Latest reported epoch")
    total_epochs: Optional[int] = Field(None, description="Epochs the run is configured for")
    current_metrics: Optional[dict[str, Any]] = Field(None, description="Latest epoch metrics")
    metrics_history: list[dict[str, Any]] = Field(default_factory=list, description="Metrics per epoch")
    model_path: Optional[str] = Field(None, description="Model artifact reference")
    source_task_id: Optional[int] = Field(None, description="Training task under test")
    external_id: Optional[str] = Field(None, description="ML service task ID")
    started_at: Optional[datetime] = Field(None, description="Start timestamp")
    completed_at: Optional[datetime] = Field(None, description="Completion timestamp")
    created_at: datetime = Field(..., description="Creation timestamp")


class MetricsEntry(BaseModel):
    """Metrics of one epoch; any metric keys besides ``epoch`` are kept."""

    model_config = ConfigDict(extra="allow")

    epoch: int = Field(..., ge=0, description="Epoch the metrics belong to")


class TaskProgressReport(BaseModel):
    """Schema for a worker progress report."""

    epoch: int = Field(..., ge=0, description="Epoch or step the metrics belong to")
    total_epochs: Optional[int] = Field(None, ge=1, description="Epochs the run is configured for")
    metrics: dict[str, Any] = Field(default_factory=dict, description="Partial metrics")
    progress: Optional[float] = Field(
        None,
        ge=0.0,
        le=100.0,
        description="Progress as a fraction (0..1) or a percentage (0..100)",
    )


class TaskCompletion(BaseModel):
    """Schema for a worker completion report."""

    metrics: dict[str, Any] = Field(..., description="Final metrics")
    model_path: Optional[str] = Field(None, max_length=512, description="Trained model artifact")


class TaskFailure(BaseModel):
    """Schema for a worker failure report."""

    error_message: str = Field(..., min_length=1, description="Error reported by the worker")


class WorkerStatusReport(BaseModel):
    """Schema of a task status as returned by the ML service."""

    status: TaskStatus = Field(..., description="Status seen by the ML service")
    queue_position: Optional[int] = Field(None, description="Queue position seen by the ML service")
    progress: Optional[float] = Field(None, ge=0.0, le=100.0, description="Progress (0..1 or 0..100)")
    current_metrics: Optional[dict[str, Any]] = Field(None, description="Latest epoch metrics")
    metrics_history: list[MetricsEntry] = Field(default_factory=list, description="Metrics per epoch")
    current_epoch: Optional[int] = Field(None, ge=0, description="Latest epoch seen by the ML service")
    total_epochs: Optional[int] = Field(None, ge=1, description="Epochs the run is configured for")
    results: Optional[dict[str, Any]] = Field(None, description="Final metrics")
    model_path: Optional[str] = Field(None, description="Trained model artifact")
    error: Optional[str] = Field(None, description="Error message")
