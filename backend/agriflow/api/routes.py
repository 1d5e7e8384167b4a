"""
API route definitions.

This module defines all API endpoints for the application.
"""

from fastapi import APIRouter

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

router = APIRouter()

# Include all endpoint routers
router.include_router(
    datasets.router,
    prefix="/datasets",
    tags=["Datasets"],
)

router.include_router(
    pretrained_models.router,
    prefix="/pretrained-models",
    tags=["Pretrained Models"],
)

router.include_router(
    training.router,
    prefix="/training",
    tags=["Training"],
)

router.include_router(
    testing.router,
    prefix="/testing",
    tags=["Testing"],
)

router.include_router(
    instances.router,
    prefix="/instances",
    tags=["Instances"],
)

router.include_router(
    tasks.router,
    prefix="/tasks",
    tags=["Tasks"],
)

router.include_router(
    selection.router,
    prefix="/selection",
    tags=["Best Model Selection"],
)

router.include_router(
    deployments.router,
    prefix="/deployments",
    tags=["Deployments"],
)

router.include_router(
    config.router,
    prefix="/config",
    tags=["Configuration"],
)

router.include_router(
    admin.router,
    prefix="/admin",
    tags=["Administration"],
)
