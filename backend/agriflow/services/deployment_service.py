"""
Deployment service.

Publishes a dataset's current best model through the ML service and keeps
an append-only record of every confirmed deployment.
"""

import logging
from math import ceil
from typing import Any

from sqlalchemy.orm import Session

from agriflow.core.exceptions import EntityNotFoundError, NoBestModelError, PublishError
from agriflow.models.dataset import Dataset
from agriflow.models.deployment import DeploymentRecord, DeploymentStatus
from agriflow.services.ml_service import MLServiceClient, MLServiceError
from agriflow.services.selection_service import SelectionService

logger = logging.getLogger(__name__)


class DeploymentService:
    """
    Service for deploying best models.

    Attributes:
        db: SQLAlchemy database session.
        ml_client: ML execution service client.
    """

    def __init__(self, db: Session, ml_client: MLServiceClient | None = None):
        """
        Initialize the deployment service.

        Args:
            db: SQLAlchemy database session.
            ml_client: ML service client. Defaults to a client built from settings.
        """
        self.db = db
        self.ml_client = ml_client or MLServiceClient()

    def deploy(self, dataset_id: int) -> DeploymentRecord:
        """
        Publish the current best model of a dataset.

        A record is written only once the publisher confirmed the upload.

        Args:
            dataset_id: Dataset ID.

        Returns:
            New DeploymentRecord.

        Raises:
            EntityNotFoundError: If the dataset does not exist.
            NoBestModelError: If the dataset has no current best model.
            PublishError: If publishing failed.
        """
        dataset = self.db.get(Dataset, dataset_id)
        if dataset is None:
            raise EntityNotFoundError(f"Dataset with ID {dataset_id} not found")

        selection = SelectionService(self.db).get_current_selection(dataset_id)
        if selection is None:
            raise NoBestModelError(f"Dataset {dataset_id} has no best model to deploy")

        try:
            storage_uri = self.ml_client.publish_model(dataset_id, selection.model_path)
        except MLServiceError as e:
            logger.error(f"Publishing best model of dataset {dataset_id} failed: {e}")
            raise PublishError(f"Failed to publish model of dataset {dataset_id}: {e}") from e

        record = DeploymentRecord(
            dataset_id=dataset.id,
            dataset_name=dataset.name,
            dataset_group=dataset.group,
            model_path=selection.model_path,
            storage_uri=storage_uri,
            metric=selection.metric,
            score=selection.score,
            status=DeploymentStatus.DEPLOYED.value,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)

        logger.info(f"Deployed best model of dataset {dataset_id} to {storage_uri}")
        return record

    def list_deployments(
        self,
        dataset_id: int | None = None,
        page: int = 1,
        page_size: int = 10,
    ) -> dict[str, Any]:
        """
        List deployment records, newest first.

        Args:
            dataset_id: Optional dataset filter.
            page: Page number (1-indexed).
            page_size: Number of items per page.

        Returns:
            Dictionary with items, total, page, page_size, and pages.
        """
        query = self.db.query(DeploymentRecord).order_by(
            DeploymentRecord.deployed_at.desc(),
            DeploymentRecord.id.desc(),
        )
        if dataset_id is not None:
            query = query.filter(DeploymentRecord.dataset_id == dataset_id)

        total = query.count()
        pages = ceil(total / page_size) if total > 0 else 1
        items = query.offset((page - 1) * page_size).limit(page_size).all()

        return {
            "items": items,
            "total": total,
            "page": page,
            "page_size": page_size,
            "pages": pages,
        }
