"""
Deployment record database model.

Append-only log of models published to external storage.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import String, Integer, DateTime, Float, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from agriflow.core.database import Base
from agriflow.models.dataset import utcnow


class DeploymentStatus(str, Enum):
    """Deployment record status enumeration."""

    DEPLOYED = "DEPLOYED"


class DeploymentRecord(Base):
    """
    Deployment record written once a model is confirmed published.

    Rows are never updated; deploying again appends a new row.

    Attributes:
        id: Unique identifier for the record.
        dataset_id: Dataset the deployed model was trained on.
        dataset_name: Dataset name at deployment time.
        dataset_group: Dataset taxonomy group at deployment time.
        model_path: Artifact reference of the deployed model.
        storage_uri: Location returned by the publisher.
        metric: Metric the model was selected with.
        score: Metric value recorded at deployment time.
        status: Record status.
        deployed_at: Timestamp of the deployment.
    """

    __tablename__ = "deployment_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dataset_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("datasets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    dataset_name: Mapped[str] = mapped_column(String(255), nullable=False)
    dataset_group: Mapped[str] = mapped_column(String(50), nullable=False)
    model_path: Mapped[str | None] = mapped_column(String(512), nullable=True)
    storage_uri: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    metric: Mapped[str] = mapped_column(String(50), nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DeploymentStatus.DEPLOYED.value,
    )
    deployed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<DeploymentRecord(id={self.id}, dataset_id={self.dataset_id}, score={self.score})>"
