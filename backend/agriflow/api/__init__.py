"""
API route handlers.

This module exports all API routers used in the application.
"""

from agriflow.api.routes import router

__all__ = ["router"]

