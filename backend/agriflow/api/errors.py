"""
Translation of service errors into HTTP errors.
"""

import logging

from fastapi import HTTPException

from agriflow.core.exceptions import ExternalServiceError, OrchestrationError

logger = logging.getLogger(__name__)


def to_http_exception(error: OrchestrationError) -> HTTPException:
    """
    Map a typed service error to an HTTPException.

    The detail carries the error message; the ``X-Error-Code`` header
    carries the machine-readable code.
    """
    if isinstance(error, ExternalServiceError):
        logger.error(f"External service failure: {error}")
    return HTTPException(
        status_code=error.status_code,
        detail=str(error),
        headers={"X-Error-Code": error.code},
    )
