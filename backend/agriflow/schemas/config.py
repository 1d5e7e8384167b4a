"""
Client configuration Pydantic schemas.
"""

from pydantic import BaseModel, Field


class ClientConfigResponse(BaseModel):
    """Settings the dashboard reads to drive its polling and forms."""

    poll_interval_seconds: int = Field(..., description="Suggested status polling cadence")
    split_ratio_tolerance: float = Field(..., description="Allowed split ratio deviation from 1.0")
    task_max_runtime_minutes: int = Field(..., description="IN_PROGRESS duration before a task is failed")
    metrics: list[str] = Field(..., description="Metrics accepted for best model selection")
    transformers: list[str] = Field(..., description="Augmentation transformers")
    groups: list[str] = Field(..., description="Taxonomy groups")
