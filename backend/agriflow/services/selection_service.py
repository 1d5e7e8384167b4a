"""
Best model selection service.

Ranks the completed tasks of a dataset's latest testing instance by a
registered metric and keeps the winner as the dataset's current best model.
"""

import logging
import math
from collections.abc import Sequence
from typing import Any

from sqlalchemy.orm import Session

from agriflow.core.exceptions import EntityNotFoundError
from agriflow.models.dataset import Dataset, utcnow
from agriflow.models.instance import InstanceKind
from agriflow.models.selection import BestModelSelection, SelectionMetric, SelectionOutcome
from agriflow.models.task import Task, TaskStatus
from agriflow.services.instance_service import InstanceService

logger = logging.getLogger(__name__)


def metric_value(task: Task, metric: SelectionMetric) -> float | None:
    """
    Read ``metric`` from a task's results.

    Returns:
        The value as a float, or None when it is missing, non-numeric or
        not finite.
    """
    value: Any = (task.results or {}).get(metric.result_key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    if not math.isfinite(value):
        return None
    return value


def choose_best(tasks: Sequence[Task], metric: SelectionMetric) -> tuple[Task, float] | None:
    """
    Pick the COMPLETED task with the highest ``metric``.

    Ties go to the lowest queue position. Tasks without a usable value
    never win.

    Args:
        tasks: Candidate tasks.
        metric: Metric to maximise.

    Returns:
        ``(task, score)`` of the winner, or None if no task is eligible.
    """
    best: tuple[Task, float] | None = None
    for task in sorted(tasks, key=lambda t: t.queue_position):
        if task.status != TaskStatus.COMPLETED.value:
            continue
        score = metric_value(task, metric)
        if score is None:
            continue
        if best is None or score > best[1]:
            best = (task, score)
    return best


class SelectionService:
    """
    Service for selecting and reading the best model of a dataset.

    Attributes:
        db: SQLAlchemy database session.
    """

    def __init__(self, db: Session):
        """
        Initialize the selection service.

        Args:
            db: SQLAlchemy database session.
        """
        self.db = db
        self.instances = InstanceService(db)

    def select_best(
        self,
        dataset_id: int,
        metric: SelectionMetric = SelectionMetric.MAP50,
    ) -> tuple[SelectionOutcome, BestModelSelection | None]:
        """
        Select the best tested model of a dataset.

        Only a SELECTED outcome writes; every other outcome leaves the
        stored selection as it was.

        Args:
            dataset_id: Dataset ID.
            metric: Metric to maximise.

        Returns:
            Outcome and, when selected, the stored selection.

        Raises:
            EntityNotFoundError: If the dataset does not exist.
        """
        if self.db.get(Dataset, dataset_id) is None:
            raise EntityNotFoundError(f"Dataset with ID {dataset_id} not found")

        outcome, candidate = self._evaluate(dataset_id, metric)
        if candidate is None:
            logger.info(f"No best model for dataset {dataset_id} ({outcome.value})")
            return outcome, None

        task, score = candidate
        source = self.db.get(Task, task.source_task_id) if task.source_task_id else None
        model_path = task.model_path or (source.model_path if source else None)

        selection = self.get_current_selection(dataset_id)
        if selection is None:
            selection = BestModelSelection(dataset_id=dataset_id)
            self.db.add(selection)

        selection.testing_instance_id = task.instance_id
        selection.training_task_id = task.source_task_id
        selection.test_task_id = task.id
        selection.metric = metric.value
        selection.score = score
        selection.model_path = model_path
        selection.hyperparameters = dict(task.hyperparameters or {})
        selection.selected_at = utcnow()

        self.db.commit()
        self.db.refresh(selection)

        logger.info(
            f"Selected test task {task.id} as best model of dataset {dataset_id} "
            f"({metric.value}={score})"
        )
        return SelectionOutcome.SELECTED, selection

    def get_current_selection(self, dataset_id: int) -> BestModelSelection | None:
        return (
            self.db.query(BestModelSelection)
            .filter(BestModelSelection.dataset_id == dataset_id)
            .first()
        )

    def verify_selection(self, dataset_id: int) -> bool | None:
        """
        Check the stored selection against a fresh evaluation.

        Returns:
            None when nothing is stored, otherwise whether recomputing with
            the stored metric picks the same test task.
        """
        selection = self.get_current_selection(dataset_id)
        if selection is None:
            return None
        _, candidate = self._evaluate(dataset_id, SelectionMetric(selection.metric))
        return candidate is not None and candidate[0].id == selection.test_task_id

    def _evaluate(
        self,
        dataset_id: int,
        metric: SelectionMetric,
    ) -> tuple[SelectionOutcome, tuple[Task, float] | None]:
        instance = self.instances.get_latest_instance(dataset_id, InstanceKind.TESTING)
        if instance is None:
            return SelectionOutcome.NO_TESTING_INSTANCE, None

        tasks = self.instances.list_tasks(instance.id)
        completed = [task for task in tasks if task.status == TaskStatus.COMPLETED.value]
        if not completed:
            if tasks and all(task.status == TaskStatus.FAILED.value for task in tasks):
                return SelectionOutcome.ALL_TASKS_FAILED, None
            return SelectionOutcome.NO_COMPLETED_TASKS, None

        best = choose_best(completed, metric)
        if best is None:
            return SelectionOutcome.NO_ELIGIBLE_METRIC, None
        return SelectionOutcome.SELECTED, best
