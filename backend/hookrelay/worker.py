import logging
from typing import Any
from uuid import UUID

from arq import cron

from hookrelay.core.config import settings
from hookrelay.core.database import SessionLocal
from hookrelay.services.webhook_delivery_service import WebhookDeliveryService
from hookrelay.services.webhook_service import WebhookService
from hookrelay.tasks import redis_settings

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


async def process_failed_deliveries_task(ctx: dict[str, Any]) -> int:
    """Background task: re-attempt failed deliveries whose backoff has elapsed.

    Runs every WEBHOOK_RETRY_SWEEP_MINUTES minutes.
    """
    db = SessionLocal()
    try:
        service = WebhookDeliveryService(db)
        count = service.process_failed_deliveries()
        if count > 0:
            logger.info("Retried %d failed webhook deliveries", count)
        return count
    finally:
        db.close()


async def trigger_webhooks_task(
    ctx: dict[str, Any],
    event: str,
    payload: dict[str, Any],
    workspace_id: str | None = None,
) -> int:
    """Background task: fan an event out to its subscribed endpoints.

    Args:
        ctx: ARQ worker context.
        event: Event name, e.g. "task.created".
        payload: Event data delivered under "payload".
        workspace_id: UUID string limiting the fan-out to one workspace.

    Returns:
        Number of deliveries created.
    """
    db = SessionLocal()
    try:
        service = WebhookService(db)
        return service.trigger(event, payload, UUID(workspace_id) if workspace_id else None)
    finally:
        db.close()


def sweep_minutes(interval: int) -> set[int]:
    """Minutes of the hour on which a sweep every ``interval`` minutes fires."""
    interval = max(1, min(interval, 60))
    return set(range(0, 60, interval))


class WorkerSettings:
    functions = [
        process_failed_deliveries_task,
        trigger_webhooks_task,
    ]
    cron_jobs = [
        cron(
            process_failed_deliveries_task,
            minute=sweep_minutes(settings.WEBHOOK_RETRY_SWEEP_MINUTES),
        ),
    ]
    redis_settings = redis_settings
