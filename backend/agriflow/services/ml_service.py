"""
ML execution service client.

Handles communication with the external service that collects images,
annotates, augments, trains, tests and publishes models.
"""

import logging
from datetime import date
from typing import Any

import httpx

from agriflow.core.config import settings
from agriflow.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


class MLServiceError(ExternalServiceError):
    """Base exception for ML service errors."""
    pass


class MLServiceConnectionError(MLServiceError):
    """Raised when the ML service cannot be reached."""
    pass


class MLServiceClient:
    """
    Client for the ML execution service HTTP API.

    Every call is synchronous from the caller's point of view: it returns
    once the ML service acknowledged the request. Long-running work then
    reports back through task callbacks.

    Attributes:
        base_url: ML service base URL.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: int | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the ML service client.

        Args:
            base_url: ML service base URL. Defaults to settings.
            timeout: Request timeout in seconds. Defaults to settings.
            transport: Optional httpx transport, used to stub the service.
        """
        self.base_url = base_url or settings.ml_service_url
        self.timeout = timeout or settings.ml_service_timeout
        self._transport = transport

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request and check its status.

        Raises:
            MLServiceConnectionError: If the service is unreachable.
            MLServiceError: If the service answers with an error status.
        """
        try:
            with httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = client.request(method, path, **kwargs)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = self._error_detail(e.response)
            logger.error(f"ML service {method} {path} failed with {e.response.status_code}: {detail}")
            raise MLServiceError(f"ML service error ({e.response.status_code}): {detail}")
        except httpx.HTTPError as e:
            logger.error(f"ML service {method} {path} unreachable: {e}")
            raise MLServiceConnectionError(f"Failed to reach ML service: {str(e)}")
        return response

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """
        Send a request and decode its JSON object body.

        An empty body decodes to an empty dict.

        Raises:
            MLServiceConnectionError: If the service is unreachable.
            MLServiceError: If the service answers with an error status or
                a body that is not a JSON object.
        """
        response = self._send(method, path, **kwargs)
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"ML service {method} {path} returned invalid JSON: {e}")
            raise MLServiceError(f"ML service returned an invalid JSON body for {method} {path}")
        return self._expect_object(data, f"{method} {path}")

    @staticmethod
    def _expect_object(data: Any, source: str) -> dict[str, Any]:
        if not isinstance(data, dict):
            logger.error(f"ML service {source} returned {type(data).__name__} instead of an object")
            raise MLServiceError(f"ML service returned an unexpected body for {source}")
        return data

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(body, dict) and "detail" in body:
            return str(body["detail"])
        return str(body)

    def check_health(self) -> bool:
        """
        Check if the ML service is reachable.

        Returns:
            True if the service answered.
        """
        try:
            self._send("GET", "/health")
            return True
        except MLServiceError:
            return False

    def create_dataset(
        self,
        dataset_id: int,
        group: str,
        start_date: date,
        end_date: date,
        client_ids: list[int],
    ) -> list[str]:
        """
        Collect client images for a new dataset.

        Args:
            dataset_id: Identifier the dataset is stored under.
            group: Taxonomy group key.
            start_date: First day of the collection window.
            end_date: Last day of the collection window.
            client_ids: Clients whose images are collected.

        Returns:
            Filenames of the collected images.
        """
        data = self._request(
            "POST",
            "/datasets",
            json={
                "dataset_id": dataset_id,
                "group": group,
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "user_ids": client_ids,
            },
        )
        images = data.get("images", [])
        if not isinstance(images, list):
            raise MLServiceError(f"ML service returned malformed images for dataset {dataset_id}")
        return [str(image) for image in images]

    def auto_annotate(self, dataset_id: int, model_path: str, use_gpu: bool) -> dict[str, Any]:
        """Annotate every image of a dataset with a pretrained model."""
        return self._request(
            "POST",
            f"/annotate/{dataset_id}",
            json={"model_path": model_path, "use_gpu": use_gpu},
        )

    def replace_labels(self, dataset_id: int, filename: str, archive: bytes) -> dict[str, Any]:
        """Replace the labels of a dataset with a human-validated archive."""
        return self._request(
            "POST",
            f"/datasets/{dataset_id}/replace_labels",
            files={"annotations_zip": (filename, archive, "application/zip")},
        )

    def augment(self, dataset_id: int, transformers: list[str]) -> dict[str, Any]:
        """Apply augmentation transformers to a dataset."""
        return self._request(
            "POST",
            "/augment-dataset",
            json={"dataset_id": dataset_id, "transformers": transformers},
        )

    def start_training(
        self,
        dataset_id: int,
        task_ids: list[int],
        params_list: list[dict[str, int | float]],
        split_ratios: dict[str, float],
        use_gpu: bool,
    ) -> dict[str, Any]:
        """
        Queue one training run per hyperparameter set.

        ``task_ids[i]`` is the task the worker reports progress of
        ``params_list[i]`` against.
        """
        return self._request(
            "POST",
            "/start_training",
            json={
                "dataset_id": dataset_id,
                "task_ids": task_ids,
                "params_list": params_list,
                "split_ratios": split_ratios,
                "use_gpu": use_gpu,
            },
        )

    def start_testing(
        self,
        dataset_id: int,
        task_ids: list[int],
        model_paths: list[str | None],
        use_gpu: bool,
    ) -> dict[str, Any]:
        """Queue one test run per trained model."""
        return self._request(
            "POST",
            f"/test-model/{dataset_id}",
            json={
                "task_ids": task_ids,
                "model_paths": model_paths,
                "use_gpu": use_gpu,
            },
        )

    def get_task_status(self, task_id: int) -> dict[str, Any]:
        """Fetch the status of a task as seen by the ML service."""
        data = self._request("GET", f"/training-task/{task_id}")
        return self._expect_object(data.get("task", data), f"GET /training-task/{task_id}")

    def publish_model(self, dataset_id: int, model_path: str | None) -> str | None:
        """
        Copy a model artifact to deployment storage.

        Returns:
            Storage URI of the published artifact, when the service reports one.
        """
        data = self._request(
            "POST",
            "/deploy-model",
            json={"dataset_id": dataset_id, "model_path": model_path},
        )
        uri = data.get("uri")
        return str(uri) if uri is not None else None
