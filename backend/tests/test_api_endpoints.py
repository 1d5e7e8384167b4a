"""
Tests for API endpoints.

Tests the API endpoints using the FastAPI test client with a mocked
ML service.
"""

import io
import zipfile
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from agriflow.models.dataset import DatasetStatus, utcnow
from agriflow.models.deployment import DeploymentRecord
from agriflow.models.instance import InstanceKind
from agriflow.models.task import Task
from agriflow.services.instance_service import TaskSpec
from agriflow.services.ml_service import MLServiceError


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check(self, client: TestClient):
        """Test health check returns healthy status."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data


class TestAuthentication:
    """Tests for token and role enforcement."""

    def test_missing_token(self, client: TestClient):
        response = client.get("/api/v1/datasets/")

        assert response.status_code == 401

    def test_invalid_token(self, client: TestClient):
        response = client.get("/api/v1/datasets/", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    def test_user_cannot_register_pretrained_model(self, client: TestClient, user_headers):
        response = client.post(
            "/api/v1/pretrained-models/",
            json={"name": "leek-yolo", "group": "leek", "model_path": "models/leek.pt"},
            headers=user_headers,
        )

        assert response.status_code == 403


class TestDatasetEndpoints:
    """Tests for dataset API endpoints."""

    def test_create_dataset(self, client: TestClient, user_headers):
        response = client.post(
            "/api/v1/datasets/",
            json={
                "name": "Peppers June",
                "group": "solanaceae",
                "start_date": "2024-06-01",
                "end_date": "2024-06-30",
                "client_ids": [4, 5],
            },
            headers=user_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "RAW"
        assert data["image_count"] == 3
        assert data["available_actions"] == ["auto_annotate"]

    def test_create_dataset_unknown_group(self, client: TestClient, user_headers):
        response = client.post(
            "/api/v1/datasets/",
            json={
                "name": "Bananas",
                "group": "bananas",
                "start_date": "2024-06-01",
                "end_date": "2024-06-30",
                "client_ids": [1],
            },
            headers=user_headers,
        )

        assert response.status_code == 422

    def test_create_dataset_ml_failure(self, client: TestClient, user_headers, mock_ml_client: MagicMock):
        mock_ml_client.create_dataset.side_effect = MLServiceError("storage offline")

        response = client.post(
            "/api/v1/datasets/",
            json={
                "name": "Offline",
                "group": "bean",
                "start_date": "2024-06-01",
                "end_date": "2024-06-30",
                "client_ids": [1],
            },
            headers=user_headers,
        )

        assert response.status_code == 502
        assert response.headers["X-Error-Code"] == "external_service_error"

    def test_list_and_get_datasets(self, client: TestClient, user_headers, make_dataset):
        dataset = make_dataset(DatasetStatus.VALIDATED)
        make_dataset(DatasetStatus.RAW)

        response = client.get("/api/v1/datasets/?status=VALIDATED", headers=user_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 1

        response = client.get(f"/api/v1/datasets/{dataset.id}", headers=user_headers)
        assert response.status_code == 200
        assert response.json()["available_actions"] == ["augment"]

    def test_get_dataset_not_found(self, client: TestClient, user_headers):
        response = client.get("/api/v1/datasets/999", headers=user_headers)

        assert response.status_code == 404

    def test_auto_annotate_twice(self, client: TestClient, user_headers, make_dataset, pretrained_model):
        dataset = make_dataset(DatasetStatus.RAW)
        payload = {"model_id": pretrained_model.id, "use_gpu": False}

        first = client.post(f"/api/v1/datasets/{dataset.id}/auto-annotate", json=payload, headers=user_headers)
        second = client.post(f"/api/v1/datasets/{dataset.id}/auto-annotate", json=payload, headers=user_headers)

        assert first.status_code == 200
        assert first.json()["status"] == "AUTO_ANNOTATED"
        assert second.status_code == 409
        assert second.headers["X-Error-Code"] == "invalid_transition"

    def test_validate_upload(self, client: TestClient, user_headers, make_dataset):
        dataset = make_dataset(DatasetStatus.AUTO_ANNOTATED)
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            zf.writestr("img_001.txt", "0 0.5 0.5 0.2 0.2\n")
            zf.writestr("img_002.txt", "")

        response = client.post(
            f"/api/v1/datasets/{dataset.id}/validate",
            files={"file": ("labels.zip", buffer.getvalue(), "application/zip")},
            headers=user_headers,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "VALIDATED"

    def test_augment(self, client: TestClient, user_headers, make_dataset):
        dataset = make_dataset(DatasetStatus.VALIDATED)

        response = client.post(
            f"/api/v1/datasets/{dataset.id}/augment",
            json={"transformers": ["vertical_flip", "center_crop"]},
            headers=user_headers,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "AUGMENTED"
        assert response.json()["transformers"] == ["vertical_flip", "center_crop"]


class TestPretrainedModelEndpoints:
    """Tests for pretrained model API endpoints."""

    def test_register_and_deactivate(self, client: TestClient, admin_headers, user_headers):
        response = client.post(
            "/api/v1/pretrained-models/",
            json={"name": "leek-yolo", "group": "leek", "model_path": "models/leek.pt"},
            headers=admin_headers,
        )
        assert response.status_code == 201
        model_id = response.json()["id"]

        response = client.post(f"/api/v1/pretrained-models/{model_id}/deactivate", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        response = client.get("/api/v1/pretrained-models/?active_only=true", headers=user_headers)
        assert response.json() == []


class TestTrainingEndpoints:
    """Tests for training, testing and instance endpoints."""

    def test_submit_training_and_poll_status(self, client: TestClient, user_headers, make_dataset):
        dataset = make_dataset(DatasetStatus.VALIDATED)

        response = client.post(
            "/api/v1/training/",
            json={
                "dataset_id": dataset.id,
                "hyperparameter_sets": [{"epochs": 10}, {"epochs": 20}],
                "split_ratios": {"train": 0.8, "val": 0.1, "test": 0.1},
            },
            headers=user_headers,
        )
        assert response.status_code == 201
        instance = response.json()
        assert len(instance["task_ids"]) == 2

        response = client.get(f"/api/v1/instances/{instance['id']}/status", headers=user_headers)
        assert response.status_code == 200
        status = response.json()
        assert status["status"] == "QUEUED"
        assert status["progress_percentage"] == 0.0
        assert [t["queue_position"] for t in status["tasks"]] == [0, 1]

    def test_submit_training_on_raw_dataset(self, client: TestClient, user_headers, make_dataset):
        dataset = make_dataset(DatasetStatus.RAW)

        response = client.post(
            "/api/v1/training/",
            json={"dataset_id": dataset.id, "hyperparameter_sets": [{"epochs": 10}]},
            headers=user_headers,
        )

        assert response.status_code == 412

    def test_submit_training_bad_split(self, client: TestClient, user_headers, make_dataset):
        dataset = make_dataset(DatasetStatus.VALIDATED)

        response = client.post(
            "/api/v1/training/",
            json={
                "dataset_id": dataset.id,
                "hyperparameter_sets": [{"epochs": 10}],
                "split_ratios": {"train": 0.5, "val": 0.1, "test": 0.1},
            },
            headers=user_headers,
        )

        assert response.status_code == 422
        assert response.headers["X-Error-Code"] == "validation_error"

    def test_latest_training_instance(self, client: TestClient, user_headers, make_dataset, make_instance):
        response = client.get("/api/v1/training/latest", headers=user_headers)
        assert response.status_code == 200
        assert response.json() == {
            "found": False,
            "instance_id": None,
            "dataset_id": None,
            "dataset_name": None,
            "dataset_group": None,
            "created_at": None,
        }

        dataset = make_dataset(DatasetStatus.VALIDATED, name="Salad spring")
        instance = make_instance(dataset)

        data = client.get("/api/v1/training/latest", headers=user_headers).json()
        assert data["found"] is True
        assert data["instance_id"] == instance.id
        assert data["dataset_name"] == "Salad spring"

    def test_submit_testing(self, client: TestClient, user_headers, make_dataset, make_instance, finish_task):
        dataset = make_dataset(DatasetStatus.VALIDATED)
        training = make_instance(dataset)
        finish_task(training.task_ids[0], {"metrics/mAP50(B)": 0.5}, "runs/0/best.pt")

        response = client.post("/api/v1/testing/", json={"dataset_id": dataset.id}, headers=user_headers)

        assert response.status_code == 201
        assert response.json()["kind"] == "TESTING"
        assert len(response.json()["task_ids"]) == 1

        latest = client.get(f"/api/v1/testing/latest?dataset_id={dataset.id}", headers=user_headers).json()
        assert latest["instance_id"] == response.json()["id"]

    def test_sync_instance(
        self,
        client: TestClient,
        user_headers,
        make_dataset,
        make_instance,
        mock_ml_client: MagicMock,
    ):
        instance = make_instance(make_dataset(DatasetStatus.VALIDATED), specs=[{"epochs": 1}])
        mock_ml_client.get_task_status.return_value = {
            "status": "COMPLETED",
            "results": {"metrics/mAP50(B)": 0.4},
        }

        response = client.post(f"/api/v1/instances/{instance.id}/sync", headers=user_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "COMPLETED"
        assert response.json()["progress_percentage"] == 100.0

    def test_instance_not_found(self, client: TestClient, user_headers):
        response = client.get("/api/v1/instances/321/status", headers=user_headers)

        assert response.status_code == 404


class TestTaskCallbacks:
    """Tests for worker callback endpoints."""

    def test_worker_lifecycle(self, client: TestClient, worker_headers, user_headers, make_dataset, make_instance):
        instance = make_instance(make_dataset(DatasetStatus.VALIDATED))
        task_id = instance.task_ids[1]

        response = client.post(f"/api/v1/tasks/{task_id}/start", headers=worker_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "IN_PROGRESS"

        status = client.get(f"/api/v1/instances/{instance.id}/status", headers=user_headers).json()
        assert status["status"] == "IN_PROGRESS"
        assert status["current_task_id"] == task_id

        response = client.post(
            f"/api/v1/tasks/{task_id}/progress",
            json={"epoch": 3, "metrics": {"loss": 0.42}, "progress": 30},
            headers=worker_headers,
        )
        assert response.status_code == 200
        assert response.json()["progress"] == pytest.approx(0.3)

        response = client.post(
            f"/api/v1/tasks/{task_id}/complete",
            json={"metrics": {"metrics/mAP50(B)": 0.77}, "model_path": "runs/1/best.pt"},
            headers=worker_headers,
        )
        assert response.status_code == 200

        status = client.get(f"/api/v1/instances/{instance.id}/status", headers=user_headers).json()
        assert status["status"] == "QUEUED"
        assert status["progress_percentage"] == pytest.approx(33.33)

        response = client.post(
            f"/api/v1/tasks/{task_id}/fail",
            json={"error_message": "late"},
            headers=worker_headers,
        )
        assert response.status_code == 409

    def test_callback_requires_worker_key(self, client: TestClient, user_headers, make_dataset, make_instance):
        instance = make_instance(make_dataset(DatasetStatus.VALIDATED))

        response = client.post(f"/api/v1/tasks/{instance.task_ids[0]}/start", headers=user_headers)

        assert response.status_code == 401

    def test_report_endpoint(self, client: TestClient, worker_headers, make_dataset, make_instance):
        instance = make_instance(make_dataset(DatasetStatus.VALIDATED))

        response = client.post(
            f"/api/v1/tasks/{instance.task_ids[0]}/report",
            json={"status": "FAILED", "error": "out of memory"},
            headers=worker_headers,
        )

        assert response.status_code == 200
        assert response.json()["error_message"] == "out of memory"


class TestSelectionAndDeployment:
    """Tests for best model selection and deployment endpoints."""

    @pytest.fixture
    def tested_dataset(self, make_dataset, make_instance, finish_task):
        dataset = make_dataset(DatasetStatus.AUGMENTED)
        training = make_instance(dataset, specs=[{"epochs": 10}, {"epochs": 20}])
        for task_id in training.task_ids:
            finish_task(task_id, {"metrics/mAP50(B)": 0.5}, f"runs/{task_id}/best.pt")
        testing = make_instance(
            dataset,
            kind=InstanceKind.TESTING,
            specs=[
                TaskSpec(hyperparameters=t.hyperparameters, source_task_id=t.id, model_path=t.model_path)
                for t in training.tasks
            ],
        )
        finish_task(testing.task_ids[0], {"metrics/mAP50(B)": 0.58})
        finish_task(testing.task_ids[1], {"metrics/mAP50(B)": 0.71})
        return dataset

    def test_select_without_testing(self, client: TestClient, user_headers, make_dataset):
        dataset = make_dataset(DatasetStatus.VALIDATED)

        response = client.post("/api/v1/selection/", json={"dataset_id": dataset.id}, headers=user_headers)

        assert response.status_code == 200
        assert response.json() == {"outcome": "no_testing_instance", "best_model": None}

    def test_select_unknown_metric(self, client: TestClient, user_headers, tested_dataset):
        response = client.post(
            "/api/v1/selection/",
            json={"dataset_id": tested_dataset.id, "metric": "f1"},
            headers=user_headers,
        )

        assert response.status_code == 422

    def test_select_and_deploy(
        self,
        client: TestClient,
        user_headers,
        tested_dataset,
        test_db_session: Session,
    ):
        response = client.post(
            "/api/v1/selection/",
            json={"dataset_id": tested_dataset.id, "metric": "map50"},
            headers=user_headers,
        )
        assert response.status_code == 200
        best = response.json()["best_model"]
        assert response.json()["outcome"] == "selected"
        assert best["score"] == 0.71
        assert best["hyperparameters"] == {"epochs": 20}

        current = client.get(f"/api/v1/selection/{tested_dataset.id}", headers=user_headers).json()
        assert current["found"] is True
        assert current["consistent"] is True

        response = client.post("/api/v1/deployments/", json={"dataset_id": tested_dataset.id}, headers=user_headers)
        assert response.status_code == 201
        assert response.json()["score"] == 0.71
        assert response.json()["storage_uri"] == "s3://agriflow-models/best.pt"

        listing = client.get(f"/api/v1/deployments/?dataset_id={tested_dataset.id}", headers=user_headers).json()
        assert listing["total"] == 1

    def test_deploy_without_selection(
        self,
        client: TestClient,
        user_headers,
        make_dataset,
        test_db_session: Session,
    ):
        dataset = make_dataset(DatasetStatus.VALIDATED)

        response = client.post("/api/v1/deployments/", json={"dataset_id": dataset.id}, headers=user_headers)

        assert response.status_code == 412
        assert response.headers["X-Error-Code"] == "no_best_model"
        assert test_db_session.query(DeploymentRecord).count() == 0

    def test_deploy_publish_failure(
        self,
        client: TestClient,
        user_headers,
        tested_dataset,
        mock_ml_client: MagicMock,
        test_db_session: Session,
    ):
        client.post("/api/v1/selection/", json={"dataset_id": tested_dataset.id}, headers=user_headers)
        mock_ml_client.publish_model.side_effect = MLServiceError("bucket unavailable")

        response = client.post("/api/v1/deployments/", json={"dataset_id": tested_dataset.id}, headers=user_headers)

        assert response.status_code == 502
        assert response.headers["X-Error-Code"] == "publish_failed"
        assert test_db_session.query(DeploymentRecord).count() == 0


class TestConfigAndAdminEndpoints:
    """Tests for configuration and administration endpoints."""

    def test_client_config(self, client: TestClient):
        response = client.get("/api/v1/config/client")

        assert response.status_code == 200
        data = response.json()
        assert data["poll_interval_seconds"] == 5
        assert data["metrics"] == ["map50", "map50_95", "precision", "recall"]
        assert "center_crop" in data["transformers"]
        assert "brassicas" in data["groups"]

    def test_expire_stale_tasks(
        self,
        client: TestClient,
        admin_headers,
        worker_headers,
        make_dataset,
        make_instance,
        test_db_session: Session,
    ):
        instance = make_instance(make_dataset(DatasetStatus.VALIDATED))
        task_id = instance.task_ids[0]
        client.post(f"/api/v1/tasks/{task_id}/start", headers=worker_headers)
        task = test_db_session.get(Task, task_id)
        task.started_at = utcnow() - timedelta(days=2)
        test_db_session.commit()

        response = client.post("/api/v1/admin/expire-stale-tasks", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"expired_task_ids": [task_id], "count": 1}

    def test_expire_stale_tasks_requires_admin(self, client: TestClient, user_headers):
        response = client.post("/api/v1/admin/expire-stale-tasks", headers=user_headers)

        assert response.status_code == 403
