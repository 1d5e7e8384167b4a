"""
API endpoint modules.
"""

from agriflow.api.endpoints import (
    admin,
    config,
    datasets,
    deployments,
    instances,
    pretrained_models,
    selection,
    tasks,
    testing,
    training,
)

__all__ = [
    "admin",
    "config",
    "datasets",
    "deployments",
    "instances",
    "pretrained_models",
    "selection",
    "tasks",
    "testing",
    "training",
]
