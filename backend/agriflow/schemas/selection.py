"""
Best model selection Pydantic schemas for request/response validation.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

from agriflow.models.selection import SelectionMetric, SelectionOutcome


class SelectionRequest(BaseModel):
    """Schema for a best model selection request."""

    dataset_id: int = Field(..., description="Dataset to select for")
    metric: SelectionMetric = Field(SelectionMetric.MAP50, description="Metric to maximise")


class BestModelResponse(BaseModel):
    """Schema for a stored best model selection."""

    model_config = ConfigDict(from_attributes=True)

    dataset_id: int = Field(..., description="Dataset ID")
    testing_instance_id: int = Field(..., description="Testing instance ID")
    training_task_id: Optional[int] = Field(None, description="Training task ID")
    test_task_id: int = Field(..., description="Winning test task ID")
    metric: SelectionMetric = Field(..., description="Ranking metric")
    score: float = Field(..., description="Metric value")
    model_path: Optional[str] = Field(None, description="Model artifact reference")
    hyperparameters: dict[str, int | float] = Field(..., description="Hyperparameters snapshot")
    selected_at: datetime = Field(..., description="Selection timestamp")


class SelectionResponse(BaseModel):
    """
    Schema for a selection outcome.

    ``outcome`` tells "selected" apart from the benign negative results
    (no testing yet, tests still running, every test failed).
    """

    outcome: SelectionOutcome = Field(..., description="Selection outcome")
    best_model: Optional[BestModelResponse] = Field(None, description="Selected model")


class CurrentSelectionResponse(BaseModel):
    """Schema for the current best model of a dataset."""

    found: bool = Field(..., description="Whether a selection exists")
    best_model: Optional[BestModelResponse] = Field(None, description="Current selection")
    consistent: Optional[bool] = Field(
        None,
        description="Whether recomputing from the latest testing instance yields the same model",
    )
