"""
Background workers.

This module exports the stale task reaper.
"""

from agriflow.workers.stale_task_reaper import StaleTaskReaper

__all__ = [
    "StaleTaskReaper",
]
