"""
Best model selection database model.

Caches the current best model of each dataset. The row is a pointer that
can always be recomputed from the latest testing instance.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, String, Integer, DateTime, Float, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from agriflow.core.database import Base
from agriflow.models.dataset import utcnow


class SelectionMetric(str, Enum):
    """Metrics a best model can be selected by."""

    MAP50 = "map50"
    MAP50_95 = "map50_95"
    PRECISION = "precision"
    RECALL = "recall"

    @property
    def result_key(self) -> str:
        """Key of the metric in a task's result map."""
        return METRIC_RESULT_KEYS[self]


class SelectionOutcome(str, Enum):
    """Result of a selection attempt."""

    SELECTED = "selected"
    NO_TESTING_INSTANCE = "no_testing_instance"
    NO_COMPLETED_TASKS = "no_completed_tasks"
    ALL_TASKS_FAILED = "all_tasks_failed"
    NO_ELIGIBLE_METRIC = "no_eligible_metric"


# Result keys as reported by the ML service for detection models
METRIC_RESULT_KEYS: dict[SelectionMetric, str] = {
    SelectionMetric.MAP50: "metrics/mAP50(B)",
    SelectionMetric.MAP50_95: "metrics/mAP50-95(B)",
    SelectionMetric.PRECISION: "metrics/precision(B)",
    SelectionMetric.RECALL: "metrics/recall(B)",
}


class BestModelSelection(Base):
    """
    Current best model of a dataset (one row per dataset).

    Attributes:
        id: Unique identifier for the selection.
        dataset_id: Dataset the selection belongs to (unique).
        testing_instance_id: Testing instance the winner was chosen from.
        training_task_id: Training task that produced the winning model.
        test_task_id: Winning test task.
        metric: Registry id of the metric used for ranking.
        score: Metric value of the winner.
        model_path: Artifact reference of the winning model.
        hyperparameters: Hyperparameters snapshot of the winner.
        selected_at: Timestamp of the selection.
    """

    __tablename__ = "best_model_selections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dataset_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("datasets.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    testing_instance_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("instances.id", ondelete="CASCADE"),
        nullable=False,
    )
    training_task_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("tasks.id", ondelete="SET NULL"),
        nullable=True,
    )
    test_task_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
    )
    metric: Mapped[str] = mapped_column(String(50), nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    model_path: Mapped[str | None] = mapped_column(String(512), nullable=True)
    hyperparameters: Mapped[dict[str, float]] = mapped_column(JSON, nullable=False, default=dict)
    selected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<BestModelSelection(dataset_id={self.dataset_id}, test_task_id={self.test_task_id}, {self.metric}={self.score})>"
