"""
Stale task reaper.

Fails tasks that stayed IN_PROGRESS longer than the configured maximum run
time, so instances whose worker died eventually reach a terminal status.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from agriflow.core.config import settings
from agriflow.services.task_queue import TaskQueue

logger = logging.getLogger(__name__)


class StaleTaskReaper:
    """
    Background thread that periodically expires stale tasks.

    Attributes:
        interval: Seconds between two sweeps.
        max_runtime: Maximum IN_PROGRESS duration of a task.
        sweeps: Number of sweeps performed.
        last_sweep: Timestamp of the last sweep.
    """

    def __init__(
        self,
        db_session_factory: Callable[[], Session],
        interval: float | None = None,
        max_runtime: timedelta | None = None,
    ):
        """
        Initialize the reaper.

        Args:
            db_session_factory: Factory function to create DB sessions.
            interval: Seconds between sweeps. Defaults to settings.
            max_runtime: Maximum run time. Defaults to settings.
        """
        self.interval = interval if interval is not None else settings.reaper_interval_seconds
        self.max_runtime = max_runtime or timedelta(minutes=settings.task_max_runtime_minutes)
        self.sweeps = 0
        self.last_sweep: datetime | None = None

        self._db_session_factory = db_session_factory
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the reaper thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="stale-task-reaper", daemon=True)
        self._thread.start()
        logger.info(
            f"Stale task reaper started (interval={self.interval}s, max_runtime={self.max_runtime})"
        )

    def stop(self) -> None:
        """Stop the reaper thread."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)
        self._thread = None
        logger.info("Stale task reaper stopped")

    def sweep(self) -> list[int]:
        """
        Expire stale tasks once.

        Returns:
            IDs of the tasks that were failed.
        """
        db = self._db_session_factory()
        try:
            expired = TaskQueue(db).expire_stale(self.max_runtime)
        finally:
            db.close()

        self.sweeps += 1
        self.last_sweep = datetime.now()
        return expired

    def _run(self) -> None:
        """Main reaper loop."""
        while not self._stop_event.is_set():
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Stale task sweep failed: {e}")
            self._stop_event.wait(self.interval)
