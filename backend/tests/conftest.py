"""
Pytest configuration and fixtures.

Provides common fixtures for testing including database sessions,
test clients, identity tokens and a mocked ML service client.
"""

import os

# Must be set before the application settings are imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("REAPER_ENABLED", "false")

from collections.abc import Callable, Generator
from datetime import date, datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

import agriflow.models  # noqa: F401  (registers all tables on Base.metadata)
from agriflow.api.deps import get_ml_client
from agriflow.core.config import settings
from agriflow.core.database import Base, get_db
from agriflow.main import create_app
from agriflow.models.dataset import Dataset, DatasetGroup, DatasetImage, DatasetStatus
from agriflow.models.instance import Instance, InstanceKind
from agriflow.models.pretrained_model import PretrainedModel
from agriflow.models.task import Task
from agriflow.services.instance_service import InstanceService, TaskSpec
from agriflow.services.ml_service import MLServiceClient
from agriflow.services.task_queue import TaskQueue


@pytest.fixture(scope="function")
def test_db_engine():
    """Create a test database engine with in-memory SQLite."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def test_db_session(test_db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_db_engine,
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def mock_ml_client() -> MagicMock:
    """ML service client stub acknowledging every request."""
    ml_client = MagicMock(spec=MLServiceClient)
    ml_client.create_dataset.return_value = ["img_001.jpg", "img_002.jpg", "img_003.jpg"]
    ml_client.auto_annotate.return_value = {"status": "annotated"}
    ml_client.replace_labels.return_value = {"status": "replaced"}
    ml_client.augment.return_value = {"status": "augmented"}
    ml_client.start_training.return_value = {"status": "queued"}
    ml_client.start_testing.return_value = {"status": "queued"}
    ml_client.publish_model.return_value = "s3://agriflow-models/best.pt"
    return ml_client


@pytest.fixture(scope="function")
def client(test_db_session: Session, mock_ml_client: MagicMock) -> Generator[TestClient, None, None]:
    """Create a test client with overridden database and ML service dependencies."""

    def override_get_db():
        try:
            yield test_db_session
        finally:
            pass

    app = create_app()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ml_client] = lambda: mock_ml_client

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def make_token(principal_id: int, role: str, expires_in: timedelta = timedelta(hours=1)) -> str:
    payload = {
        "id": principal_id,
        "role": role,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


@pytest.fixture
def token_factory() -> Callable[..., str]:
    """Factory encoding identity tokens signed with the configured secret."""
    return make_token


@pytest.fixture
def user_headers() -> dict[str, str]:
    """Authorization headers of a regular user."""
    return {"Authorization": f"Bearer {make_token(1, 'user')}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    """Authorization headers of an administrator."""
    return {"Authorization": f"Bearer {make_token(2, 'admin')}"}


@pytest.fixture
def worker_headers() -> dict[str, str]:
    """Headers of an ML worker callback."""
    return {"X-Worker-Key": settings.worker_api_key}


@pytest.fixture
def make_dataset(test_db_session: Session) -> Callable[..., Dataset]:
    """Factory creating a dataset directly in a given lifecycle status."""

    def _make(
        status: DatasetStatus = DatasetStatus.RAW,
        group: DatasetGroup = DatasetGroup.SOLANACEAE,
        images: tuple[str, ...] = ("img_001.jpg", "img_002.jpg"),
        name: str = "Tomato greenhouse",
    ) -> Dataset:
        dataset = Dataset(
            name=name,
            group=group.value,
            start_date=date(2024, 5, 1),
            end_date=date(2024, 5, 31),
            client_ids=[1, 2],
            status=status.value,
            image_count=len(images),
        )
        dataset.images = [DatasetImage(filename=filename) for filename in images]
        test_db_session.add(dataset)
        test_db_session.commit()
        test_db_session.refresh(dataset)
        return dataset

    return _make


@pytest.fixture
def pretrained_model(test_db_session: Session) -> PretrainedModel:
    """Active pretrained model of the solanaceae group."""
    model = PretrainedModel(
        name="solanaceae-yolo",
        group=DatasetGroup.SOLANACEAE.value,
        model_path="models/solanaceae/best.pt",
        is_active=True,
    )
    test_db_session.add(model)
    test_db_session.commit()
    test_db_session.refresh(model)
    return model


@pytest.fixture
def make_instance(test_db_session: Session) -> Callable[..., Instance]:
    """Factory creating an instance with one task per spec."""

    def _make(
        dataset: Dataset,
        kind: InstanceKind = InstanceKind.TRAINING,
        specs: list[TaskSpec | dict[str, Any]] | None = None,
    ) -> Instance:
        if specs is None:
            specs = [{"epochs": 10, "lr0": 0.01}, {"epochs": 20, "lr0": 0.01}, {"epochs": 10, "lr0": 0.001}]
        return InstanceService(test_db_session).create_instance(dataset.id, kind, specs)

    return _make


@pytest.fixture
def finish_task(test_db_session: Session) -> Callable[..., Task]:
    """Run a QUEUED task through to COMPLETED (or FAILED when ``error`` is given)."""

    def _finish(
        task_id: int,
        results: dict[str, Any] | None = None,
        model_path: str | None = None,
        error: str | None = None,
    ) -> Task:
        queue = TaskQueue(test_db_session)
        queue.mark_in_progress(task_id)
        if error is not None:
            return queue.mark_failed(task_id, error)
        return queue.mark_completed(task_id, results or {}, model_path)

    return _finish
