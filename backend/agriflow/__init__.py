"""
Agriflow orchestration backend.

This package provides the FastAPI backend that drives datasets through their
annotation lifecycle and coordinates training, testing, best-model selection
and deployment against an external ML execution service.
"""

__version__ = "1.0.0"
