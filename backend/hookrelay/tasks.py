from typing import Any
from uuid import UUID

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from hookrelay.core.config import settings

# Redis connection settings
redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)


async def get_redis_pool() -> ArqRedis:
    """Get or create Redis pool for arq"""
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job:
    """
    Enqueue a task to the arq worker.

    Args:
        task_name: Name of the task function
        *args: Positional arguments for the task
        **kwargs: Keyword arguments for the task

    Returns:
        Job object from arq
    """
    pool = await get_redis_pool()
    try:
        job = await pool.enqueue_job(task_name, *args, **kwargs)
        return job  # type: ignore[return-value]
    finally:
        await pool.close()


async def enqueue_trigger_webhooks(
    event: str,
    payload: dict[str, Any],
    workspace_id: UUID | None = None,
) -> Job:
    """Fire an event from business code without waiting on the first attempts."""
    return await enqueue_task(
        "trigger_webhooks_task",
        event,
        payload,
        str(workspace_id) if workspace_id else None,
    )


async def enqueue_process_failed_deliveries() -> Job:
    """Enqueue a one-off retry sweep."""
    return await enqueue_task("process_failed_deliveries_task")
