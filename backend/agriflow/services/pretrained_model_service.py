"""
Pretrained model service.

Manages the registry of models available for auto-annotation.
"""

import logging

from sqlalchemy.orm import Session

from agriflow.core.exceptions import EntityNotFoundError, ValidationError
from agriflow.models.pretrained_model import PretrainedModel
from agriflow.schemas.pretrained_model import PretrainedModelCreate

logger = logging.getLogger(__name__)


class PretrainedModelService:
    """
    Service for managing pretrained annotation models.

    Attributes:
        db: SQLAlchemy database session.
    """

    def __init__(self, db: Session):
        self.db = db

    def register(self, model_data: PretrainedModelCreate) -> PretrainedModel:
        """Register a new active pretrained model."""
        model = PretrainedModel(
            name=model_data.name,
            group=model_data.group.value,
            model_path=model_data.model_path,
            is_active=True,
        )
        self.db.add(model)
        self.db.commit()
        self.db.refresh(model)
        logger.info(f"Registered pretrained model {model.id} for group {model.group}")
        return model

    def get(self, model_id: int) -> PretrainedModel | None:
        return self.db.get(PretrainedModel, model_id)

    def list_models(self, group: str | None = None, active_only: bool = False) -> list[PretrainedModel]:
        """
        List pretrained models.

        Args:
            group: Optional taxonomy group filter.
            active_only: Only return active models.

        Returns:
            Models ordered by registration date, newest first.
        """
        query = self.db.query(PretrainedModel).order_by(PretrainedModel.created_at.desc())
        if group:
            query = query.filter(PretrainedModel.group == group)
        if active_only:
            query = query.filter(PretrainedModel.is_active.is_(True))
        return query.all()

    def set_active(self, model_id: int, is_active: bool) -> PretrainedModel:
        """
        Activate or deactivate a model.

        Raises:
            EntityNotFoundError: If the model does not exist.
        """
        model = self.get(model_id)
        if not model:
            raise EntityNotFoundError(f"Pretrained model with ID {model_id} not found")
        model.is_active = is_active
        self.db.commit()
        self.db.refresh(model)
        logger.info(f"Pretrained model {model_id} {'activated' if is_active else 'deactivated'}")
        return model

    def resolve_for_group(self, model_id: int, group: str) -> PretrainedModel:
        """
        Resolve a model usable to annotate a dataset of ``group``.

        Raises:
            EntityNotFoundError: If the model does not exist.
            ValidationError: If the model is inactive or of another group.
        """
        model = self.get(model_id)
        if not model:
            raise EntityNotFoundError(f"Pretrained model with ID {model_id} not found")
        if not model.is_active:
            raise ValidationError(f"Pretrained model {model_id} is not active")
        if model.group != group:
            raise ValidationError(
                f"Pretrained model {model_id} belongs to group '{model.group}', "
                f"dataset belongs to group '{group}'"
            )
        return model
