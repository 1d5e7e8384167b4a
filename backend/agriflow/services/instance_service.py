"""
Instance service.

Binds the tasks of one submission into an instance and derives the
instance-level views (aggregate status, progress, current task) from the
tasks on every read.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from agriflow.core.config import settings
from agriflow.core.exceptions import EntityNotFoundError, ValidationError
from agriflow.models.dataset import Dataset
from agriflow.models.instance import Instance, InstanceKind
from agriflow.models.task import Task, TaskStatus
from agriflow.services.task_queue import TaskQueue

logger = logging.getLogger(__name__)


@dataclass
class TaskSpec:
    """Definition of one task to create in an instance."""

    hyperparameters: dict[str, int | float]
    source_task_id: int | None = None
    model_path: str | None = None


@dataclass
class AggregateStatus:
    """Instance-level view derived from its tasks."""

    status: TaskStatus
    progress_percentage: float
    per_status_counts: dict[TaskStatus, int] = field(default_factory=dict)
    current_task_id: int | None = None


def current_task(tasks: Sequence[Task]) -> Task | None:
    """Return the first IN_PROGRESS task by queue position, if any."""
    running = [task for task in tasks if task.status == TaskStatus.IN_PROGRESS.value]
    return min(running, key=lambda task: task.queue_position) if running else None


def aggregate(tasks: Sequence[Task], precision: int | None = None) -> AggregateStatus:
    """
    Derive the aggregate status of a set of tasks.

    Rules, in order of precedence:

    1. IN_PROGRESS if any task is IN_PROGRESS.
    2. COMPLETED if every task is terminal (COMPLETED or FAILED).
    3. QUEUED otherwise.

    Progress is the percentage of terminal tasks; failed tasks count as
    done since they will not run again.

    Args:
        tasks: Tasks of one instance.
        precision: Decimal places of the percentage. Defaults to settings.

    Returns:
        AggregateStatus of the tasks.
    """
    if precision is None:
        precision = settings.progress_precision

    counts = {status: 0 for status in TaskStatus}
    for task in tasks:
        counts[TaskStatus(task.status)] += 1

    total = len(tasks)
    terminal = counts[TaskStatus.COMPLETED] + counts[TaskStatus.FAILED]
    progress = round(100.0 * terminal / total, precision) if total else 0.0

    if counts[TaskStatus.IN_PROGRESS] > 0:
        status = TaskStatus.IN_PROGRESS
    elif total > 0 and terminal == total:
        status = TaskStatus.COMPLETED
    else:
        status = TaskStatus.QUEUED

    running = current_task(tasks)
    return AggregateStatus(
        status=status,
        progress_percentage=progress,
        per_status_counts=counts,
        current_task_id=running.id if running else None,
    )


class InstanceService:
    """
    Service for creating instances and reading their aggregate views.

    Reads never write: aggregates are recomputed from the tasks on each
    call so they cannot drift from missed worker updates.

    Attributes:
        db: SQLAlchemy database session.
    """

    def __init__(self, db: Session):
        """
        Initialize the instance service.

        Args:
            db: SQLAlchemy database session.
        """
        self.db = db

    def create_instance(
        self,
        dataset_id: int,
        kind: InstanceKind,
        task_specs: Sequence[TaskSpec | dict[str, int | float]],
        use_gpu: bool = False,
        split_ratios: dict[str, float] | None = None,
    ) -> Instance:
        """
        Create an instance and its tasks in one transaction.

        Tasks get queue positions ``0..n-1`` in the order of ``task_specs``
        and start QUEUED.

        Args:
            dataset_id: Dataset the instance runs against.
            kind: TRAINING or TESTING.
            task_specs: One entry per task; a plain dict is read as hyperparameters.
            use_gpu: Whether the ML service runs the tasks on GPU.
            split_ratios: Dataset split (training only).

        Returns:
            Created Instance with its tasks.

        Raises:
            ValidationError: If ``task_specs`` is empty.
            EntityNotFoundError: If the dataset does not exist.
        """
        if not task_specs:
            raise ValidationError("An instance needs at least one task")
        if self.db.get(Dataset, dataset_id) is None:
            raise EntityNotFoundError(f"Dataset with ID {dataset_id} not found")

        specs = [spec if isinstance(spec, TaskSpec) else TaskSpec(hyperparameters=spec) for spec in task_specs]

        queue = TaskQueue(self.db)
        try:
            instance = Instance(
                kind=kind.value,
                dataset_id=dataset_id,
                use_gpu=use_gpu,
                split_ratios=split_ratios,
            )
            self.db.add(instance)
            self.db.flush()

            for spec in specs:
                queue.enqueue(
                    instance,
                    spec.hyperparameters,
                    source_task_id=spec.source_task_id,
                    model_path=spec.model_path,
                )

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(instance)
        logger.info(
            f"Created {kind.value.lower()} instance {instance.id} for dataset {dataset_id} "
            f"with {len(specs)} task(s)"
        )
        return instance

    def get_instance(self, instance_id: int) -> Instance | None:
        return self.db.get(Instance, instance_id)

    def require_instance(self, instance_id: int) -> Instance:
        """Get an instance by ID or raise EntityNotFoundError."""
        instance = self.get_instance(instance_id)
        if not instance:
            raise EntityNotFoundError(f"Instance with ID {instance_id} not found")
        return instance

    def get_latest_instance(
        self,
        dataset_id: int | None = None,
        kind: InstanceKind = InstanceKind.TRAINING,
    ) -> Instance | None:
        """
        Get the most recently created instance.

        Args:
            dataset_id: Restrict to one dataset. None searches all datasets.
            kind: TRAINING or TESTING.

        Returns:
            Latest Instance, or None when none exists yet.
        """
        query = self.db.query(Instance).filter(Instance.kind == kind.value)
        if dataset_id is not None:
            query = query.filter(Instance.dataset_id == dataset_id)
        return query.order_by(Instance.created_at.desc(), Instance.id.desc()).first()

    def get_latest_instance_info(
        self,
        dataset_id: int | None = None,
        kind: InstanceKind = InstanceKind.TRAINING,
    ) -> dict[str, Any] | None:
        """
        Describe the latest instance together with its dataset.

        Returns:
            Dictionary with instance_id, dataset_id, dataset_name,
            dataset_group and created_at, or None when no instance exists.
        """
        instance = self.get_latest_instance(dataset_id, kind)
        if instance is None:
            return None
        return {
            "instance_id": instance.id,
            "dataset_id": instance.dataset_id,
            "dataset_name": instance.dataset.name,
            "dataset_group": instance.dataset.group,
            "created_at": instance.created_at,
        }

    def list_tasks(self, instance_id: int) -> list[Task]:
        """List the tasks of an instance ordered by queue position."""
        return (
            self.db.query(Task)
            .filter(Task.instance_id == instance_id)
            .order_by(Task.queue_position)
            .all()
        )

    def get_aggregate_status(self, instance_id: int) -> AggregateStatus:
        """
        Compute the live aggregate status of an instance.

        Raises:
            EntityNotFoundError: If the instance does not exist.
        """
        self.require_instance(instance_id)
        return aggregate(self.list_tasks(instance_id))
