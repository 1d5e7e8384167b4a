"""
Pretrained model database model.

Represents detection models available for auto-annotating datasets.
"""

from datetime import datetime

from sqlalchemy import String, Integer, DateTime, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from agriflow.core.database import Base
from agriflow.models.dataset import utcnow


class PretrainedModel(Base):
    """
    Pretrained model usable for auto-annotation.

    A model annotates only datasets of its own taxonomy group and only
    while it is active.

    Attributes:
        id: Unique identifier for the model.
        name: Human-readable model name.
        group: Taxonomy group key the model was trained for.
        model_path: Artifact reference understood by the ML service.
        is_active: Whether the model can be used for annotation.
        created_at: Timestamp when the model was registered.
    """

    __tablename__ = "pretrained_models"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    group: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    model_path: Mapped[str] = mapped_column(String(512), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<PretrainedModel(id={self.id}, name='{self.name}', group='{self.group}')>"
