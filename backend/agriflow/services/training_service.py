"""
Training service for submitting training and testing batches.

Validates submissions, creates the instance that tracks them and hands the
work to the ML execution service. Also pulls task statuses from the ML
service for deployments where workers do not call back.
"""

import logging
from math import isclose

import pydantic
from sqlalchemy.orm import Session

from agriflow.core.config import settings
from agriflow.core.exceptions import (
    EntityNotFoundError,
    InvalidTransitionError,
    PreconditionError,
    ValidationError,
)
from agriflow.core.lifecycle import TRAINABLE_STATUSES
from agriflow.models.dataset import Dataset, DatasetStatus
from agriflow.models.instance import Instance, InstanceKind
from agriflow.models.task import TaskStatus, TERMINAL_STATUSES
from agriflow.schemas.instance import SplitRatios, TestingSubmission, TrainingSubmission
from agriflow.schemas.task import WorkerStatusReport
from agriflow.services.instance_service import AggregateStatus, InstanceService, TaskSpec
from agriflow.services.ml_service import MLServiceClient
from agriflow.services.task_queue import TaskQueue

logger = logging.getLogger(__name__)


def validate_split_ratios(ratios: SplitRatios, tolerance: float | None = None) -> dict[str, float]:
    """
    Check that train/val/test ratios sum to 1.0.

    Args:
        ratios: Split ratios.
        tolerance: Allowed absolute deviation. Defaults to settings.

    Returns:
        Ratios as a plain dictionary.

    Raises:
        ValidationError: If the ratios do not sum to 1.0 within tolerance.
    """
    if tolerance is None:
        tolerance = settings.split_ratio_tolerance
    total = ratios.train + ratios.val + ratios.test
    if not isclose(total, 1.0, rel_tol=0.0, abs_tol=tolerance):
        raise ValidationError(f"Split ratios must sum to 1.0 (got {total:.4f})")
    if ratios.train <= 0.0:
        raise ValidationError("Training split ratio must be positive")
    return ratios.model_dump()


class TrainingService:
    """
    Service for training and testing submissions.

    Attributes:
        db: SQLAlchemy database session.
        ml_client: ML execution service client.
    """

    def __init__(self, db: Session, ml_client: MLServiceClient | None = None):
        """
        Initialize the training service.

        Args:
            db: SQLAlchemy database session.
            ml_client: ML service client. Defaults to a client built from settings.
        """
        self.db = db
        self.ml_client = ml_client or MLServiceClient()
        self.instances = InstanceService(db)

    def _require_dataset(self, dataset_id: int) -> Dataset:
        dataset = self.db.get(Dataset, dataset_id)
        if not dataset:
            raise EntityNotFoundError(f"Dataset with ID {dataset_id} not found")
        return dataset

    def submit_training(self, submission: TrainingSubmission) -> Instance:
        """
        Submit one training task per hyperparameter set.

        Training does not change the dataset status.

        Args:
            submission: Training submission data.

        Returns:
            Created training Instance.

        Raises:
            EntityNotFoundError: If the dataset does not exist.
            ValidationError: If the split ratios or hyperparameter sets are invalid.
            PreconditionError: If the dataset is not validated yet.
            MLServiceError: If the ML service rejected the submission.
        """
        split_ratios = validate_split_ratios(submission.split_ratios)
        if not submission.hyperparameter_sets:
            raise ValidationError("At least one hyperparameter set is required")

        dataset = self._require_dataset(submission.dataset_id)
        if DatasetStatus(dataset.status) not in TRAINABLE_STATUSES:
            raise PreconditionError(
                f"Dataset {dataset.id} must be VALIDATED or AUGMENTED before training "
                f"(status: {dataset.status})"
            )

        instance = self.instances.create_instance(
            dataset.id,
            InstanceKind.TRAINING,
            submission.hyperparameter_sets,
            use_gpu=submission.use_gpu,
            split_ratios=split_ratios,
        )

        try:
            response = self.ml_client.start_training(
                dataset_id=dataset.id,
                task_ids=instance.task_ids,
                params_list=[task.hyperparameters for task in instance.tasks],
                split_ratios=split_ratios,
                use_gpu=submission.use_gpu,
            )
        except Exception:
            self._discard(instance)
            raise

        self._store_external_ids(instance, response.get("task_ids") if isinstance(response, dict) else None)
        logger.info(
            f"Submitted training instance {instance.id} for dataset {dataset.id} "
            f"({len(instance.tasks)} task(s), gpu={submission.use_gpu})"
        )
        return instance

    def submit_testing(self, submission: TestingSubmission) -> Instance:
        """
        Test every completed model of the dataset's latest training instance.

        Args:
            submission: Testing submission data.

        Returns:
            Created testing Instance, one task per completed training task.

        Raises:
            EntityNotFoundError: If the dataset does not exist.
            PreconditionError: If there is no completed training task to test.
            MLServiceError: If the ML service rejected the submission.
        """
        dataset = self._require_dataset(submission.dataset_id)

        training = self.instances.get_latest_instance(dataset.id, InstanceKind.TRAINING)
        if training is None:
            raise PreconditionError(f"Dataset {dataset.id} has no training instance to test")

        completed = [
            task for task in self.instances.list_tasks(training.id)
            if task.status == TaskStatus.COMPLETED.value
        ]
        if not completed:
            raise PreconditionError(
                f"Training instance {training.id} has no completed task to test"
            )

        specs = [
            TaskSpec(
                hyperparameters=task.hyperparameters,
                source_task_id=task.id,
                model_path=task.model_path,
            )
            for task in completed
        ]
        instance = self.instances.create_instance(
            dataset.id,
            InstanceKind.TESTING,
            specs,
            use_gpu=submission.use_gpu,
        )

        try:
            response = self.ml_client.start_testing(
                dataset_id=dataset.id,
                task_ids=instance.task_ids,
                model_paths=[task.model_path for task in instance.tasks],
                use_gpu=submission.use_gpu,
            )
        except Exception:
            self._discard(instance)
            raise

        self._store_external_ids(instance, response.get("task_ids") if isinstance(response, dict) else None)
        logger.info(
            f"Submitted testing instance {instance.id} for dataset {dataset.id} "
            f"against training instance {training.id} ({len(specs)} model(s))"
        )
        return instance

    def sync_instance(self, instance_id: int) -> AggregateStatus:
        """
        Pull the status of every unfinished task from the ML service.

        A task whose report is malformed, or whose reported status would
        move it backwards, is left untouched and logged; its siblings are
        still synced.

        Args:
            instance_id: Instance ID.

        Returns:
            Aggregate status after the sync.

        Raises:
            EntityNotFoundError: If the instance does not exist.
            MLServiceError: If the ML service could not be queried.
        """
        self.instances.require_instance(instance_id)
        queue = TaskQueue(self.db)

        for task in self.instances.list_tasks(instance_id):
            if task.status in TERMINAL_STATUSES:
                continue
            try:
                report = WorkerStatusReport.model_validate(self.ml_client.get_task_status(task.id))
            except pydantic.ValidationError as e:
                logger.warning(f"Ignored malformed status report for task {task.id}: {e}")
                continue
            try:
                queue.apply_report(task.id, report)
            except InvalidTransitionError as e:
                logger.warning(f"Ignored status report for task {task.id}: {e}")

        return self.instances.get_aggregate_status(instance_id)

    def _discard(self, instance: Instance) -> None:
        """Remove an instance the ML service never accepted."""
        logger.error(f"ML service rejected instance {instance.id}; discarding it")
        self.db.delete(instance)
        self.db.commit()

    def _store_external_ids(self, instance: Instance, external_ids: list | None) -> None:
        if not external_ids or len(external_ids) != len(instance.tasks):
            return
        for task, external_id in zip(instance.tasks, external_ids):
            task.external_id = str(external_id)
        self.db.commit()
        self.db.refresh(instance)
