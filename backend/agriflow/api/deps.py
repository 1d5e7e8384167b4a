"""
Shared API dependencies.
"""

from agriflow.services.ml_service import MLServiceClient


def get_ml_client() -> MLServiceClient:
    """Dependency to get an MLServiceClient instance."""
    return MLServiceClient()
