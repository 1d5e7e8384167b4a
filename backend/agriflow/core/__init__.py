"""
Core module containing configuration and database setup.
"""

from agriflow.core.config import settings
from agriflow.core.database import get_db, engine, Base

__all__ = ["settings", "get_db", "engine", "Base"]
