"""
SQLAlchemy database models.

This module exports all database models used in the application.
"""

from agriflow.models.dataset import Dataset, DatasetGroup, DatasetImage, DatasetStatus
from agriflow.models.pretrained_model import PretrainedModel
from agriflow.models.instance import Instance, InstanceKind
from agriflow.models.task import Task, TaskStatus
from agriflow.models.selection import BestModelSelection, SelectionMetric, SelectionOutcome
from agriflow.models.deployment import DeploymentRecord, DeploymentStatus

__all__ = [
    "Dataset",
    "DatasetGroup",
    "DatasetImage",
    "DatasetStatus",
    "PretrainedModel",
    "Instance",
    "InstanceKind",
    "Task",
    "TaskStatus",
    "BestModelSelection",
    "SelectionMetric",
    "SelectionOutcome",
    "DeploymentRecord",
    "DeploymentStatus",
]
