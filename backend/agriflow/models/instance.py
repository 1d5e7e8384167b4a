"""
Instance database model.

Represents a batch of training or testing tasks submitted together.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import JSON, String, Integer, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agriflow.core.database import Base
from agriflow.models.dataset import utcnow

if TYPE_CHECKING:
    from agriflow.models.dataset import Dataset
    from agriflow.models.task import Task


class InstanceKind(str, Enum):
    """Kind of work an instance groups."""

    TRAINING = "TRAINING"
    TESTING = "TESTING"


class Instance(Base):
    """
    Instance model binding the tasks of one submission.

    Aggregate status and progress are never stored; they are derived
    from the tasks on every read.

    Attributes:
        id: Unique identifier for the instance.
        kind: TRAINING or TESTING.
        dataset_id: Foreign key to the dataset.
        use_gpu: Whether the ML service was asked to run on GPU.
        split_ratios: Train/val/test ratios (training instances only).
        created_at: Timestamp when the instance was submitted.
        tasks: Tasks of the instance ordered by queue position.
    """

    __tablename__ = "instances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    dataset_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("datasets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    use_gpu: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    split_ratios: Mapped[dict[str, float] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )

    dataset: Mapped["Dataset"] = relationship("Dataset", back_populates="instances")
    tasks: Mapped[list["Task"]] = relationship(
        "Task",
        back_populates="instance",
        cascade="all, delete-orphan",
        order_by="Task.queue_position",
    )

    @property
    def task_ids(self) -> list[int]:
        return [task.id for task in self.tasks]

    def __repr__(self) -> str:
        return f"<Instance(id={self.id}, kind='{self.kind}', dataset_id={self.dataset_id})>"
