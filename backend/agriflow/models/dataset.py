"""
Dataset database models.

Represents image datasets collected for a taxonomy group and their
annotation lifecycle status.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import JSON, String, Integer, Date, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agriflow.core.database import Base

if TYPE_CHECKING:
    from agriflow.models.instance import Instance


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DatasetStatus(str, Enum):
    """Dataset lifecycle status enumeration."""

    RAW = "RAW"
    AUTO_ANNOTATED = "AUTO_ANNOTATED"
    VALIDATED = "VALIDATED"
    AUGMENTED = "AUGMENTED"


class DatasetGroup(str, Enum):
    """Vegetable/fruit taxonomy groups a dataset can be collected for."""

    CUCURBITS = "cucurbits"
    SOLANACEAE = "solanaceae"
    LEEK = "leek"
    BRASSICAS = "brassicas"
    BEAN = "bean"
    SALAD = "salad"


class Dataset(Base):
    """
    Dataset model representing a date-ranged collection of images.

    Attributes:
        id: Unique identifier for the dataset.
        name: Human-readable name for the dataset.
        group: Taxonomy group key.
        start_date: First day of the image collection window.
        end_date: Last day of the image collection window.
        client_ids: Identifiers of the clients the images were collected from.
        image_count: Number of images in the dataset.
        status: Current lifecycle status.
        annotation_model_id: Pretrained model used for auto-annotation.
        transformers: Augmentation transformers applied so far.
        pending_operation: Lifecycle operation currently running on the ML service.
        pending_since: Timestamp when the pending operation was claimed.
        created_at: Timestamp when the dataset was created.
        updated_at: Timestamp when the dataset was last updated.
        images: Image inventory of the dataset.
        instances: Training and testing instances submitted for the dataset.
    """

    __tablename__ = "datasets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    group: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    client_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    image_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DatasetStatus.RAW.value,
        index=True,
    )
    annotation_model_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("pretrained_models.id", ondelete="SET NULL"),
        nullable=True,
    )
    transformers: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Set while a lifecycle operation is running on the ML service
    pending_operation: Mapped[str | None] = mapped_column(String(20), nullable=True)
    pending_since: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

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

    # Relationships
    images: Mapped[list["DatasetImage"]] = relationship(
        "DatasetImage",
        back_populates="dataset",
        cascade="all, delete-orphan",
        order_by="DatasetImage.id",
    )
    instances: Mapped[list["Instance"]] = relationship(
        "Instance",
        back_populates="dataset",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Dataset(id={self.id}, name='{self.name}', status='{self.status}')>"


class DatasetImage(Base):
    """
    Image belonging to a dataset.

    Attributes:
        id: Unique identifier for the image.
        dataset_id: Foreign key to the dataset.
        filename: Image filename as stored by the ML service.
    """

    __tablename__ = "dataset_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dataset_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("datasets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)

    dataset: Mapped["Dataset"] = relationship("Dataset", back_populates="images")

    def __repr__(self) -> str:
        return f"<DatasetImage(id={self.id}, dataset_id={self.dataset_id}, filename='{self.filename}')>"
