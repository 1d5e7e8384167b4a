"""
Application configuration module.

Manages all configuration settings using Pydantic settings management.
Configuration can be overridden via environment variables.
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.

    All settings can be overridden via environment variables.
    Environment variables should match the field name exactly
    (case-insensitive).

    Attributes:
        app_name: Name of the application.
        app_version: Current version of the application.
        debug: Enable debug mode.
        environment: Current environment (development, staging, production).

        database_url: SQLite database connection URL.

        jwt_secret: Shared secret used by the identity service to sign tokens.
        jwt_algorithm: Signing algorithm of identity tokens.
        worker_api_key: Shared key the ML workers send with status callbacks.

        ml_service_url: Base URL of the external ML execution service.
        ml_service_timeout: Timeout in seconds for ML service requests.

        split_ratio_tolerance: Allowed deviation of train/val/test ratios from 1.0.
        progress_precision: Decimal places of aggregate progress percentages.
        poll_interval_seconds: Suggested client polling cadence for status reads.

        task_max_runtime_minutes: Maximum IN_PROGRESS duration before a task is failed.
        reaper_enabled: Whether the stale task reaper thread runs on startup.
        reaper_interval_seconds: Seconds between two reaper sweeps.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = "Agriflow Orchestrator"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"

    # Database settings
    database_url: str = "sqlite:///./agriflow.db"

    # Identity settings
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    worker_api_key: str = "change-me-worker"

    # ML execution service settings
    ml_service_url: str = "http://localhost:8000"
    ml_service_timeout: int = 300

    # Orchestration settings
    split_ratio_tolerance: float = 0.001
    progress_precision: int = 2
    poll_interval_seconds: int = 5

    # Stale task handling
    task_max_runtime_minutes: int = 720
    reaper_enabled: bool = True
    reaper_interval_seconds: int = 60


settings = Settings()
