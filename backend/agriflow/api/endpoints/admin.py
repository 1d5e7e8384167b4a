"""
Administration API endpoints.
"""

from datetime import timedelta

from fastapi import APIRouter, Depends

from agriflow.api.endpoints.tasks import get_task_queue
from agriflow.core.config import settings
from agriflow.core.security import Principal, require_admin
from agriflow.services.task_queue import TaskQueue

router = APIRouter()


@router.post("/expire-stale-tasks")
async def expire_stale_tasks(
    queue: TaskQueue = Depends(get_task_queue),
    _: Principal = Depends(require_admin),
) -> dict:
    """
    Fail every task that exceeded the maximum run time.
    """
    expired = queue.expire_stale(timedelta(minutes=settings.task_max_runtime_minutes))
    return {"expired_task_ids": expired, "count": len(expired)}
