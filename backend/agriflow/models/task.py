"""
Task database model.

Represents one queued unit of training or testing work.
"""

from datetime import datetime
from enum import Enum
from typing import Any, TYPE_CHECKING

from sqlalchemy import JSON, String, Integer, DateTime, Float, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agriflow.core.database import Base
from agriflow.models.dataset import utcnow

if TYPE_CHECKING:
    from agriflow.models.instance import Instance


class TaskStatus(str, Enum):
    """Task status enumeration."""

    QUEUED = "QUEUED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


TERMINAL_STATUSES = (TaskStatus.COMPLETED.value, TaskStatus.FAILED.value)


class Task(Base):
    """
    Task model representing a single training or testing run.

    Only the external worker mutates a task after it is enqueued, and a
    task is immutable once COMPLETED or FAILED.

    Attributes:
        id: Unique identifier for the task.
        instance_id: Foreign key to the owning instance.
        dataset_id: Dataset the task runs against.
        queue_position: 0-based position, unique within the instance.
        status: Current status of the task.
        hyperparameters: Numeric hyperparameters of the run.
        results: Final metrics, set only on COMPLETED.
        error_message: Worker error, set only on FAILED.
        progress: Fraction of the run done, in [0, 1].
        current_epoch: Latest epoch reported by the worker.
        total_epochs: Number of epochs the run is configured for.
        current_metrics: Metrics of the latest reported epoch.
        metrics_history: Metrics per epoch, ordered by epoch.
        model_path: Artifact reference of the trained model.
        source_task_id: Training task whose model a testing task evaluates.
        external_id: Identifier assigned by the ML service.
        started_at: Timestamp when the task entered IN_PROGRESS.
        completed_at: Timestamp when the task became terminal.
        created_at: Timestamp when the task was enqueued.
        updated_at: Timestamp when the task was last updated.
    """

    __tablename__ = "tasks"

    __table_args__ = (
        UniqueConstraint("instance_id", "queue_position", name="unique_instance_position"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    instance_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    dataset_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("datasets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    queue_position: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TaskStatus.QUEUED.value,
        index=True,
    )
    hyperparameters: Mapped[dict[str, float]] = mapped_column(JSON, nullable=False, default=dict)
    results: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Progress tracking
    progress: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    current_epoch: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_epochs: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_metrics: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    metrics_history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    # Artifacts and lineage
    model_path: Mapped[str | None] = mapped_column(String(512), nullable=True)
    source_task_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("tasks.id", ondelete="SET NULL"),
        nullable=True,
    )
    external_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    # Timestamps
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    instance: Mapped["Instance"] = relationship("Instance", back_populates="tasks")

    def __repr__(self) -> str:
        return f"<Task(id={self.id}, instance_id={self.instance_id}, position={self.queue_position}, status='{self.status}')>"
