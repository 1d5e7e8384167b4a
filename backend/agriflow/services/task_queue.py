"""
Task queue service.

Owns the lifecycle of individual training and testing tasks:
QUEUED -> IN_PROGRESS -> COMPLETED | FAILED. Tasks never move backwards
and are immutable once terminal.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

import pydantic
from sqlalchemy import func
from sqlalchemy.orm import Session

from agriflow.core.exceptions import EntityNotFoundError, InvalidTransitionError
from agriflow.models.dataset import utcnow
from agriflow.models.instance import Instance
from agriflow.models.task import Task, TaskStatus
from agriflow.schemas.task import MetricsEntry, WorkerStatusReport

logger = logging.getLogger(__name__)

STALE_TASK_ERROR = "Task exceeded maximum run time"


def normalize_progress(value: float | None) -> float | None:
    """
    Normalize a worker progress value to a fraction in [0, 1].

    Workers report either a fraction (0..1) or a percentage (0..100);
    anything above 1 is read as a percentage.
    """
    if value is None:
        return None
    if value > 1.0:
        value = value / 100.0
    return min(max(value, 0.0), 1.0)


def merge_metrics_history(
    history: list[dict[str, Any]],
    entries: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """
    Merge epoch metric entries into a history.

    Every entry carries an integer ``epoch``. An entry replaces any existing
    entry of the same epoch. The result is ordered by epoch.
    """
    by_epoch = {entry["epoch"]: dict(entry) for entry in history}
    for entry in entries:
        by_epoch[entry["epoch"]] = dict(entry)
    return [by_epoch[epoch] for epoch in sorted(by_epoch)]


class TaskQueue:
    """
    Service for enqueuing tasks and applying worker status changes.

    Every status change is a compare-and-set on the status it starts from,
    so a transition that lost a race performs no mutation.

    Attributes:
        db: SQLAlchemy database session.
    """

    def __init__(self, db: Session):
        """
        Initialize the task queue.

        Args:
            db: SQLAlchemy database session.
        """
        self.db = db

    def get_task(self, task_id: int) -> Task | None:
        return self.db.get(Task, task_id)

    def require_task(self, task_id: int) -> Task:
        """Get a task by ID or raise EntityNotFoundError."""
        task = self.get_task(task_id)
        if not task:
            raise EntityNotFoundError(f"Task with ID {task_id} not found")
        return task

    def enqueue(
        self,
        instance: Instance,
        hyperparameters: dict[str, int | float],
        source_task_id: int | None = None,
        model_path: str | None = None,
    ) -> Task:
        """
        Append a QUEUED task to an instance.

        The task takes the next queue position of the instance (0 for the
        first task). The caller owns the transaction.

        Args:
            instance: Instance the task belongs to (must be flushed).
            hyperparameters: Hyperparameters of the run.
            source_task_id: Training task evaluated by a testing task.
            model_path: Model artifact a testing task evaluates.

        Returns:
            The new Task, flushed but not committed.
        """
        last_position = (
            self.db.query(func.max(Task.queue_position))
            .filter(Task.instance_id == instance.id)
            .scalar()
        )
        position = 0 if last_position is None else last_position + 1

        task = Task(
            instance_id=instance.id,
            dataset_id=instance.dataset_id,
            queue_position=position,
            status=TaskStatus.QUEUED.value,
            hyperparameters=dict(hyperparameters),
            source_task_id=source_task_id,
            model_path=model_path,
            metrics_history=[],
        )
        self.db.add(task)
        self.db.flush()
        return task

    def mark_in_progress(self, task_id: int) -> Task:
        """
        Move a QUEUED task to IN_PROGRESS.

        Calling it on a task already IN_PROGRESS is a no-op.

        Raises:
            EntityNotFoundError: If the task does not exist.
            InvalidTransitionError: If the task is terminal.
        """
        task = self.require_task(task_id)
        if task.status == TaskStatus.IN_PROGRESS.value:
            return task

        try:
            return self._transition(
                task,
                TaskStatus.QUEUED,
                "start",
                status=TaskStatus.IN_PROGRESS.value,
                started_at=utcnow(),
            )
        except InvalidTransitionError:
            if task.status == TaskStatus.IN_PROGRESS.value:
                return task
            raise

    def report_progress(
        self,
        task_id: int,
        epoch: int,
        metrics: dict[str, Any],
        progress: float | None = None,
        total_epochs: int | None = None,
    ) -> Task:
        """
        Record partial metrics of an IN_PROGRESS task.

        Metrics are merged into the history under ``epoch``; the status
        does not change.

        Raises:
            EntityNotFoundError: If the task does not exist.
            InvalidTransitionError: If the task is not IN_PROGRESS.
        """
        task = self.require_task(task_id)
        return self._write_progress(
            task,
            [{**metrics, "epoch": epoch}],
            progress,
            current_epoch=epoch,
            total_epochs=total_epochs,
        )

    def mark_completed(
        self,
        task_id: int,
        final_metrics: dict[str, Any],
        model_path: str | None = None,
    ) -> Task:
        """
        Complete an IN_PROGRESS task with its final metrics.

        Raises:
            EntityNotFoundError: If the task does not exist.
            InvalidTransitionError: If the task is not IN_PROGRESS.
        """
        task = self.require_task(task_id)
        values: dict[str, Any] = {
            "status": TaskStatus.COMPLETED.value,
            "results": dict(final_metrics),
            "progress": 1.0,
            "completed_at": utcnow(),
        }
        if model_path is not None:
            values["model_path"] = model_path
        return self._transition(task, TaskStatus.IN_PROGRESS, "complete", **values)

    def mark_failed(self, task_id: int, error_message: str) -> Task:
        """
        Fail an IN_PROGRESS task, recording the worker error verbatim.

        Raises:
            EntityNotFoundError: If the task does not exist.
            InvalidTransitionError: If the task is not IN_PROGRESS.
        """
        task = self.require_task(task_id)
        return self._transition(
            task,
            TaskStatus.IN_PROGRESS,
            "fail",
            status=TaskStatus.FAILED.value,
            error_message=error_message,
            completed_at=utcnow(),
        )

    def apply_report(self, task_id: int, report: WorkerStatusReport) -> Task:
        """
        Apply a task status as reported by the ML service.

        A report may skip intermediate statuses (a task seen COMPLETED
        while still QUEUED here); the missing transitions are applied in
        order. Re-applying the terminal status a task already has is a
        no-op.

        Raises:
            EntityNotFoundError: If the task does not exist.
            InvalidTransitionError: If the report would move the task backwards.
        """
        task = self.require_task(task_id)
        current = TaskStatus(task.status)

        if current.is_terminal:
            if report.status == current:
                return task
            raise InvalidTransitionError(
                f"Task {task.id} is {current.value} and cannot become {report.status.value}",
                current=current.value,
                operation="report",
            )

        if report.status == TaskStatus.QUEUED:
            if current != TaskStatus.QUEUED:
                raise InvalidTransitionError(
                    f"Task {task.id} cannot re-enter QUEUED",
                    current=current.value,
                    operation="report",
                )
            return task

        task = self.mark_in_progress(task.id)

        entries = [entry.model_dump() for entry in report.metrics_history]
        if report.current_metrics and "epoch" in report.current_metrics:
            try:
                entries.append(MetricsEntry.model_validate(report.current_metrics).model_dump())
            except pydantic.ValidationError:
                logger.warning(f"Ignored current metrics of task {task.id} without a valid epoch")
        counters = (report.progress, report.current_epoch, report.total_epochs)
        if entries or any(value is not None for value in counters):
            task = self._write_progress(
                task,
                entries,
                report.progress,
                report.current_metrics,
                current_epoch=report.current_epoch,
                total_epochs=report.total_epochs,
            )

        if report.status == TaskStatus.COMPLETED:
            final_metrics = report.results or report.current_metrics or {}
            return self.mark_completed(task.id, final_metrics, report.model_path)
        if report.status == TaskStatus.FAILED:
            return self.mark_failed(task.id, report.error or "Task failed without error message")
        return task

    def expire_stale(self, max_runtime: timedelta, now: datetime | None = None) -> list[int]:
        """
        Fail IN_PROGRESS tasks that started longer than ``max_runtime`` ago.

        Args:
            max_runtime: Maximum IN_PROGRESS duration.
            now: Reference time. Defaults to the current UTC time.

        Returns:
            IDs of the tasks that were failed.
        """
        cutoff = (now or utcnow()) - max_runtime
        stale_ids = [
            task_id
            for (task_id,) in self.db.query(Task.id)
            .filter(
                Task.status == TaskStatus.IN_PROGRESS.value,
                Task.started_at.is_not(None),
                Task.started_at < cutoff,
            )
            .order_by(Task.id)
            .all()
        ]

        expired = []
        for task_id in stale_ids:
            try:
                self.mark_failed(task_id, STALE_TASK_ERROR)
            except InvalidTransitionError:
                # Finished between the query and the write
                logger.info(f"Task {task_id} finished before it could be expired")
                continue
            expired.append(task_id)

        if expired:
            logger.warning(f"Expired {len(expired)} stale task(s): {expired}")
        return expired

    def _write_progress(
        self,
        task: Task,
        entries: list[dict[str, Any]],
        progress: float | None,
        current_metrics: dict[str, Any] | None = None,
        current_epoch: int | None = None,
        total_epochs: int | None = None,
    ) -> Task:
        history = merge_metrics_history(task.metrics_history or [], entries)
        values: dict[str, Any] = {"metrics_history": history}
        if current_epoch is None and history:
            current_epoch = history[-1]["epoch"]
        if current_epoch is not None:
            values["current_epoch"] = current_epoch
        if total_epochs is not None:
            values["total_epochs"] = total_epochs
        if current_metrics is not None:
            values["current_metrics"] = dict(current_metrics)
        elif entries:
            values["current_metrics"] = dict(entries[-1])
        normalized = normalize_progress(progress)
        if normalized is not None:
            values["progress"] = normalized
        return self._transition(task, TaskStatus.IN_PROGRESS, "report progress", **values)

    def _transition(
        self,
        task: Task,
        expected: TaskStatus,
        operation: str,
        **values: Any,
    ) -> Task:
        """
        Update ``task`` only if its stored status is still ``expected``.

        Raises:
            InvalidTransitionError: If the stored status differs.
        """
        updated = (
            self.db.query(Task)
            .filter(Task.id == task.id, Task.status == expected.value)
            .update({"updated_at": utcnow(), **values}, synchronize_session=False)
        )
        if updated == 0:
            self.db.rollback()
            self.db.refresh(task)
            logger.warning(f"Rejected {operation} on task {task.id} with status {task.status}")
            raise InvalidTransitionError(
                f"Cannot {operation} task {task.id} with status {task.status}",
                current=task.status,
                operation=operation,
            )

        self.db.commit()
        self.db.refresh(task)

        if "status" in values:
            logger.info(f"Task {task.id}: {expected.value} -> {values['status']}")
        return task
