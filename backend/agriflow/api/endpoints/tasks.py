"""
Task API endpoints.

Serves task details and receives the status callbacks of ML workers.
Callbacks authenticate with the shared worker key instead of a user token.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from agriflow.api.errors import to_http_exception
from agriflow.core.database import get_db
from agriflow.core.exceptions import OrchestrationError
from agriflow.core.security import Principal, get_current_principal, verify_worker_key
from agriflow.schemas.task import (
    TaskResponse,
    TaskProgressReport,
    TaskCompletion,
    TaskFailure,
    WorkerStatusReport,
)
from agriflow.services.task_queue import TaskQueue

router = APIRouter()


def get_task_queue(db: Session = Depends(get_db)) -> TaskQueue:
    """Dependency to get TaskQueue instance."""
    return TaskQueue(db)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: int,
    queue: TaskQueue = Depends(get_task_queue),
    _: Principal = Depends(get_current_principal),
) -> TaskResponse:
    """
    Get a task by ID.
    """
    try:
        task = queue.require_task(task_id)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return TaskResponse.model_validate(task)


@router.post(
    "/{task_id}/start",
    response_model=TaskResponse,
    dependencies=[Depends(verify_worker_key)],
)
async def start_task(
    task_id: int,
    queue: TaskQueue = Depends(get_task_queue),
) -> TaskResponse:
    """
    Mark a task as picked up by a worker.
    """
    try:
        task = queue.mark_in_progress(task_id)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return TaskResponse.model_validate(task)


@router.post(
    "/{task_id}/progress",
    response_model=TaskResponse,
    dependencies=[Depends(verify_worker_key)],
)
async def report_task_progress(
    task_id: int,
    report: TaskProgressReport,
    queue: TaskQueue = Depends(get_task_queue),
) -> TaskResponse:
    """
    Record the metrics of one epoch of a running task.
    """
    try:
        task = queue.report_progress(
            task_id,
            report.epoch,
            report.metrics,
            report.progress,
            total_epochs=report.total_epochs,
        )
    except OrchestrationError as e:
        raise to_http_exception(e)
    return TaskResponse.model_validate(task)


@router.post(
    "/{task_id}/complete",
    response_model=TaskResponse,
    dependencies=[Depends(verify_worker_key)],
)
async def complete_task(
    task_id: int,
    completion: TaskCompletion,
    queue: TaskQueue = Depends(get_task_queue),
) -> TaskResponse:
    """
    Complete a running task with its final metrics.
    """
    try:
        task = queue.mark_completed(task_id, completion.metrics, completion.model_path)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return TaskResponse.model_validate(task)


@router.post(
    "/{task_id}/fail",
    response_model=TaskResponse,
    dependencies=[Depends(verify_worker_key)],
)
async def fail_task(
    task_id: int,
    failure: TaskFailure,
    queue: TaskQueue = Depends(get_task_queue),
) -> TaskResponse:
    """
    Fail a running task with the error reported by the worker.
    """
    try:
        task = queue.mark_failed(task_id, failure.error_message)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return TaskResponse.model_validate(task)


@router.post(
    "/{task_id}/report",
    response_model=TaskResponse,
    dependencies=[Depends(verify_worker_key)],
)
async def report_task_status(
    task_id: int,
    report: WorkerStatusReport,
    queue: TaskQueue = Depends(get_task_queue),
) -> TaskResponse:
    """
    Apply a full status report of a task.

    Missing intermediate transitions are applied in order.
    """
    try:
        task = queue.apply_report(task_id, report)
    except OrchestrationError as e:
        raise to_http_exception(e)
    return TaskResponse.model_validate(task)
