"""
Pydantic schemas for request/response validation.

This module exports all Pydantic schemas used for API validation.
"""

from agriflow.schemas.dataset import (
    DatasetCreate,
    AutoAnnotateRequest,
    AugmentRequest,
    DatasetResponse,
    DatasetListResponse,
)
from agriflow.schemas.pretrained_model import (
    PretrainedModelCreate,
    PretrainedModelResponse,
)
from agriflow.schemas.task import (
    TaskResponse,
    TaskProgressReport,
    TaskCompletion,
    TaskFailure,
    WorkerStatusReport,
)
from agriflow.schemas.instance import (
    SplitRatios,
    TrainingSubmission,
    TestingSubmission,
    InstanceResponse,
    AggregateStatusResponse,
    LatestInstanceResponse,
)
from agriflow.schemas.selection import (
    SelectionRequest,
    BestModelResponse,
    SelectionResponse,
    CurrentSelectionResponse,
)
from agriflow.schemas.deployment import (
    DeploymentRequest,
    DeploymentResponse,
    DeploymentListResponse,
)
from agriflow.schemas.config import ClientConfigResponse

__all__ = [
    # Dataset schemas
    "DatasetCreate",
    "AutoAnnotateRequest",
    "AugmentRequest",
    "DatasetResponse",
    "DatasetListResponse",
    # Pretrained model schemas
    "PretrainedModelCreate",
    "PretrainedModelResponse",
    # Task schemas
    "TaskResponse",
    "TaskProgressReport",
    "TaskCompletion",
    "TaskFailure",
    "WorkerStatusReport",
    # Instance schemas
    "SplitRatios",
    "TrainingSubmission",
    "TestingSubmission",
    "InstanceResponse",
    "AggregateStatusResponse",
    "LatestInstanceResponse",
    # Selection schemas
    "SelectionRequest",
    "BestModelResponse",
    "SelectionResponse",
    "CurrentSelectionResponse",
    # Deployment schemas
    "DeploymentRequest",
    "DeploymentResponse",
    "DeploymentListResponse",
    # Config schemas
    "ClientConfigResponse",
]
