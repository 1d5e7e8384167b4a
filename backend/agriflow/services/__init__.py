"""
Business logic services.

This module exports all service classes used in the application.
"""

from agriflow.services.ml_service import MLServiceClient, MLServiceError, MLServiceConnectionError
from agriflow.services.pretrained_model_service import PretrainedModelService
from agriflow.services.dataset_service import DatasetService
from agriflow.services.task_queue import TaskQueue
from agriflow.services.instance_service import InstanceService, TaskSpec, AggregateStatus
from agriflow.services.training_service import TrainingService
from agriflow.services.selection_service import SelectionService
from agriflow.services.deployment_service import DeploymentService

__all__ = [
    "MLServiceClient",
    "MLServiceError",
    "MLServiceConnectionError",
    "PretrainedModelService",
    "DatasetService",
    "TaskQueue",
    "InstanceService",
    "TaskSpec",
    "AggregateStatus",
    "TrainingService",
    "SelectionService",
    "DeploymentService",
]
