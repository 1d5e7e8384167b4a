"""
Typed errors raised by the orchestration services.

Every rejected operation raises one of these so callers can tell an
actionable condition (fix the input, select a model first) from a transient
failure of the external ML service (retry).
"""


class OrchestrationError(Exception):
    """Base exception for orchestration errors."""

    code = "orchestration_error"
    status_code = 500


class ValidationError(OrchestrationError):
    """Raised when a request is malformed. Nothing was mutated."""

    code = "validation_error"
    status_code = 422


class InvalidTransitionError(OrchestrationError):
    """
    Raised when an operation is not legal from the current status.

    Attributes:
        current: Status the entity was in when the operation was rejected.
        operation: Name of the rejected operation.
    """

    code = "invalid_transition"
    status_code = 409

    def __init__(self, message: str, current: str | None = None, operation: str | None = None):
        super().__init__(message)
        self.current = current
        self.operation = operation


class PreconditionError(OrchestrationError):
    """Raised when a required upstream result is missing."""

    code = "precondition_failed"
    status_code = 412


class NoBestModelError(PreconditionError):
    """Raised when deploying a dataset that has no current best model."""

    code = "no_best_model"


class EntityNotFoundError(OrchestrationError):
    """Raised when a referenced entity does not exist."""

    code = "not_found"
    status_code = 404


class ExternalServiceError(OrchestrationError):
    """Raised when the external ML execution service fails."""

    code = "external_service_error"
    status_code = 502


class PublishError(ExternalServiceError):
    """Raised when publishing a model artifact to storage fails."""

    code = "publish_failed"
