"""
Dataset service for managing datasets and their lifecycle.

Handles dataset creation and the annotation, validation and augmentation
operations that move a dataset along its lifecycle.
"""

import io
import logging
import zipfile
from collections.abc import Callable
from datetime import date, datetime, timedelta
from math import ceil
from pathlib import PurePosixPath
from typing import Any

from sqlalchemy import or_
from sqlalchemy.orm import Session

from agriflow.core.config import settings
from agriflow.core.exceptions import EntityNotFoundError, InvalidTransitionError, ValidationError
from agriflow.core.lifecycle import AugmentationTransformer, DatasetOperation, can_transition
from agriflow.models.dataset import Dataset, DatasetImage, DatasetStatus, utcnow
from agriflow.schemas.dataset import DatasetCreate
from agriflow.services.ml_service import MLServiceClient
from agriflow.services.pretrained_model_service import PretrainedModelService

logger = logging.getLogger(__name__)

# Archive entries that are never label files
IGNORED_ARCHIVE_NAMES = {"classes.txt", "notes.txt"}


class DatasetService:
    """
    Service for managing datasets.

    Status changes go through the lifecycle transition table. Before the
    ML service is called, the dataset is claimed with a compare-and-set on
    its status and on the absence of a running operation, so a concurrent
    duplicate operation is rejected instead of reaching the ML service
    twice. The status only advances once the ML service confirmed the
    operation.

    Attributes:
        db: SQLAlchemy database session.
        ml_client: ML execution service client.
    """

    def __init__(self, db: Session, ml_client: MLServiceClient | None = None):
        """
        Initialize the dataset service.

        Args:
            db: SQLAlchemy database session.
            ml_client: ML service client. Defaults to a client built from settings.
        """
        self.db = db
        self.ml_client = ml_client or MLServiceClient()

    def create_dataset(self, dataset_data: DatasetCreate) -> Dataset:
        """
        Create a new RAW dataset from client images.

        Args:
            dataset_data: Dataset creation data.

        Returns:
            Created Dataset object.

        Raises:
            ValidationError: If the date range is invalid.
            MLServiceError: If the ML service failed to collect images.
        """
        if dataset_data.start_date > dataset_data.end_date:
            raise ValidationError("Start date cannot be after end date")
        if dataset_data.end_date > date.today():
            raise ValidationError("End date cannot be in the future")

        dataset = Dataset(
            name=dataset_data.name,
            group=dataset_data.group.value,
            start_date=dataset_data.start_date,
            end_date=dataset_data.end_date,
            client_ids=sorted(set(dataset_data.client_ids)),
            status=DatasetStatus.RAW.value,
        )
        self.db.add(dataset)
        self.db.flush()

        try:
            filenames = self.ml_client.create_dataset(
                dataset_id=dataset.id,
                group=dataset.group,
                start_date=dataset.start_date,
                end_date=dataset.end_date,
                client_ids=dataset.client_ids,
            )
        except Exception:
            self.db.rollback()
            raise

        dataset.images = [DatasetImage(filename=name) for name in filenames]
        dataset.image_count = len(filenames)

        self.db.commit()
        self.db.refresh(dataset)

        logger.info(f"Created dataset {dataset.id} ({dataset.group}) with {dataset.image_count} images")
        return dataset

    def get_dataset(self, dataset_id: int) -> Dataset | None:
        """
        Get a dataset by ID.

        Args:
            dataset_id: Dataset ID.

        Returns:
            Dataset object or None if not found.
        """
        return self.db.get(Dataset, dataset_id)

    def require_dataset(self, dataset_id: int) -> Dataset:
        """Get a dataset by ID or raise EntityNotFoundError."""
        dataset = self.get_dataset(dataset_id)
        if not dataset:
            raise EntityNotFoundError(f"Dataset with ID {dataset_id} not found")
        return dataset

    def list_datasets(
        self,
        page: int = 1,
        page_size: int = 10,
        status: DatasetStatus | None = None,
        group: str | None = None,
    ) -> dict[str, Any]:
        """
        List datasets with pagination and optional filtering.

        Args:
            page: Page number (1-indexed).
            page_size: Number of items per page.
            status: Optional status filter.
            group: Optional taxonomy group filter.

        Returns:
            Dictionary with items, total, page, page_size, and pages.
        """
        query = self.db.query(Dataset).order_by(Dataset.created_at.desc(), Dataset.id.desc())
        if status:
            query = query.filter(Dataset.status == status.value)
        if group:
            query = query.filter(Dataset.group == group)

        total = query.count()
        pages = ceil(total / page_size) if total > 0 else 1
        offset = (page - 1) * page_size
        items = query.offset(offset).limit(page_size).all()

        return {
            "items": items,
            "total": total,
            "page": page,
            "page_size": page_size,
            "pages": pages,
        }

    def auto_annotate(self, dataset_id: int, model_id: int, use_gpu: bool = False) -> Dataset:
        """
        Auto-annotate a RAW dataset with a pretrained model of its group.

        Args:
            dataset_id: Dataset ID.
            model_id: Pretrained model ID.
            use_gpu: Run annotation on GPU.

        Returns:
            Dataset in AUTO_ANNOTATED status.

        Raises:
            EntityNotFoundError: If the dataset or model does not exist.
            InvalidTransitionError: If the dataset is not RAW.
            ValidationError: If the model is inactive or of another group.
            MLServiceError: If annotation failed.
        """
        dataset = self.require_dataset(dataset_id)
        current = DatasetStatus(dataset.status)
        target = self._check_transition(dataset, DatasetOperation.AUTO_ANNOTATE)

        model = PretrainedModelService(self.db).resolve_for_group(model_id, dataset.group)

        return self._run_transition(
            dataset,
            current,
            target,
            DatasetOperation.AUTO_ANNOTATE,
            lambda: self.ml_client.auto_annotate(dataset_id, model.model_path, use_gpu),
            annotation_model_id=model.id,
        )

    def validate_annotations(self, dataset_id: int, filename: str, archive: bytes) -> Dataset:
        """
        Replace auto-generated labels with a human-validated archive.

        The archive must hold one label file per dataset image, named after
        the image (``<image stem>.txt``), and nothing else.

        Args:
            dataset_id: Dataset ID.
            filename: Uploaded archive filename.
            archive: Zip archive content.

        Returns:
            Dataset in VALIDATED status.

        Raises:
            EntityNotFoundError: If the dataset does not exist.
            InvalidTransitionError: If the dataset is not AUTO_ANNOTATED.
            ValidationError: If the archive does not match the image set.
            MLServiceError: If the labels could not be replaced.
        """
        dataset = self.require_dataset(dataset_id)
        current = DatasetStatus(dataset.status)
        target = self._check_transition(dataset, DatasetOperation.VALIDATE)

        labels = self.parse_label_archive(archive)
        images = {PurePosixPath(image.filename).stem for image in dataset.images}

        missing = images - labels
        unexpected = labels - images
        if missing or unexpected:
            raise ValidationError(
                f"Annotation archive does not match dataset images: "
                f"{len(missing)} image(s) without labels, "
                f"{len(unexpected)} label file(s) without image"
            )

        return self._run_transition(
            dataset,
            current,
            target,
            DatasetOperation.VALIDATE,
            lambda: self.ml_client.replace_labels(dataset_id, filename, archive),
        )

    @staticmethod
    def parse_label_archive(archive: bytes) -> set[str]:
        """
        Extract the label set of an annotation archive.

        Args:
            archive: Zip archive content.

        Returns:
            Stems of the label files in the archive.

        Raises:
            ValidationError: If the archive is unreadable or holds no labels.
        """
        try:
            with zipfile.ZipFile(io.BytesIO(archive)) as zf:
                names = zf.namelist()
        except zipfile.BadZipFile:
            raise ValidationError("Annotation archive is not a valid zip file")

        labels = set()
        for name in names:
            path = PurePosixPath(name)
            if name.endswith("/") or "__MACOSX" in path.parts:
                continue
            if path.suffix.lower() != ".txt" or path.name in IGNORED_ARCHIVE_NAMES:
                continue
            labels.add(path.stem)

        if not labels:
            raise ValidationError("Annotation archive contains no label files")
        return labels

    def augment(
        self,
        dataset_id: int,
        transformers: list[AugmentationTransformer | str],
    ) -> Dataset:
        """
        Augment a VALIDATED or AUGMENTED dataset.

        Augmentation can be applied repeatedly; the dataset stays AUGMENTED.

        Args:
            dataset_id: Dataset ID.
            transformers: Non-empty subset of the transformer registry.

        Returns:
            Dataset in AUGMENTED status.

        Raises:
            EntityNotFoundError: If the dataset does not exist.
            ValidationError: If the transformer set is empty or unknown.
            InvalidTransitionError: If the dataset is not validated yet.
            MLServiceError: If augmentation failed.
        """
        names = self._normalize_transformers(transformers)

        dataset = self.require_dataset(dataset_id)
        current = DatasetStatus(dataset.status)
        target = self._check_transition(dataset, DatasetOperation.AUGMENT)

        applied = list(dataset.transformers or [])
        applied.extend(name for name in names if name not in applied)

        return self._run_transition(
            dataset,
            current,
            target,
            DatasetOperation.AUGMENT,
            lambda: self.ml_client.augment(dataset_id, names),
            transformers=applied,
        )

    @staticmethod
    def _normalize_transformers(transformers: list[AugmentationTransformer | str]) -> list[str]:
        if not transformers:
            raise ValidationError("At least one transformer is required")

        names: list[str] = []
        for transformer in transformers:
            try:
                name = AugmentationTransformer(transformer).value
            except ValueError:
                allowed = ", ".join(t.value for t in AugmentationTransformer)
                raise ValidationError(f"Unknown transformer: {transformer}. Allowed: {allowed}")
            if name not in names:
                names.append(name)
        return names

    def _check_transition(self, dataset: Dataset, operation: DatasetOperation) -> DatasetStatus:
        try:
            return can_transition(dataset.status, operation)
        except InvalidTransitionError:
            logger.warning(
                f"Rejected {operation.value} on dataset {dataset.id} with status {dataset.status}"
            )
            raise

    def _run_transition(
        self,
        dataset: Dataset,
        expected: DatasetStatus,
        target: DatasetStatus,
        operation: DatasetOperation,
        call: Callable[[], Any],
        **values: Any,
    ) -> Dataset:
        """
        Claim the dataset, run ``call`` on the ML service, then write ``target``.

        The claim is released without a status change if ``call`` raises.
        """
        claimed_at = self._claim(dataset, expected, operation)
        try:
            call()
        except Exception:
            self._release(dataset, claimed_at)
            raise
        return self._commit_transition(dataset, expected, target, operation, claimed_at, **values)

    def _claim(self, dataset: Dataset, expected: DatasetStatus, operation: DatasetOperation) -> datetime:
        """
        Mark ``operation`` as running if the dataset is still ``expected`` and idle.

        A claim older than the ML service timeout is abandoned and can be
        taken over.

        Returns:
            Claim timestamp, identifying the claim.

        Raises:
            InvalidTransitionError: If the status changed or another operation holds the dataset.
        """
        claimed_at = utcnow()
        abandoned = claimed_at - timedelta(seconds=settings.ml_service_timeout)
        claimed = (
            self.db.query(Dataset)
            .filter(
                Dataset.id == dataset.id,
                Dataset.status == expected.value,
                or_(Dataset.pending_operation.is_(None), Dataset.pending_since < abandoned),
            )
            .update(
                {"pending_operation": operation.value, "pending_since": claimed_at},
                synchronize_session=False,
            )
        )
        if claimed == 0:
            self.db.rollback()
            self.db.refresh(dataset)
            if dataset.pending_operation is not None:
                message = f"Dataset {dataset.id} is busy with {dataset.pending_operation}"
            else:
                message = f"Dataset {dataset.id} changed status to {dataset.status} before {operation.value}"
            logger.warning(f"Rejected {operation.value} on dataset {dataset.id}: {message}")
            raise InvalidTransitionError(message, current=dataset.status, operation=operation.value)

        self.db.commit()
        return claimed_at

    def _release(self, dataset: Dataset, claimed_at: datetime) -> None:
        """Drop the claim taken at ``claimed_at``, leaving the status unchanged."""
        self.db.rollback()
        (
            self.db.query(Dataset)
            .filter(Dataset.id == dataset.id, Dataset.pending_since == claimed_at)
            .update({"pending_operation": None, "pending_since": None}, synchronize_session=False)
        )
        self.db.commit()
        self.db.refresh(dataset)

    def _commit_transition(
        self,
        dataset: Dataset,
        expected: DatasetStatus,
        target: DatasetStatus,
        operation: DatasetOperation,
        claimed_at: datetime,
        **values: Any,
    ) -> Dataset:
        """
        Write ``target`` and drop the claim, if the stored status is still ``expected``.

        Raises:
            InvalidTransitionError: If the status was changed while the operation ran.
        """
        updated = (
            self.db.query(Dataset)
            .filter(
                Dataset.id == dataset.id,
                Dataset.status == expected.value,
                Dataset.pending_since == claimed_at,
            )
            .update(
                {
                    "status": target.value,
                    "pending_operation": None,
                    "pending_since": None,
                    "updated_at": utcnow(),
                    **values,
                },
                synchronize_session=False,
            )
        )
        if updated == 0:
            self._release(dataset, claimed_at)
            logger.warning(
                f"Concurrent update on dataset {dataset.id}: expected {expected.value}, "
                f"found {dataset.status}"
            )
            raise InvalidTransitionError(
                f"Dataset {dataset.id} changed status to {dataset.status} during {operation.value}",
                current=dataset.status,
                operation=operation.value,
            )

        self.db.commit()
        self.db.refresh(dataset)

        logger.info(f"Dataset {dataset.id}: {expected.value} -> {target.value} ({operation.value})")
        return dataset
