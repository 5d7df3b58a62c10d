"""Webhook Delivery API endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from hookrelay.core.auth import get_current_workspace
from hookrelay.core.database import get_db
from hookrelay.models.webhook_delivery import WebhookDelivery, WebhookDeliveryStatus
from hookrelay.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from hookrelay.schemas.webhook_delivery import (
    MarkDeliveredRequest,
    MarkFailedRequest,
    ProcessFailedResponse,
    WebhookDeliveryCreate,
    WebhookDeliveryResponse,
    WebhookDeliveryStats,
    WebhookDeliveryUpdate,
)
from hookrelay.services.webhook_delivery_service import WebhookDeliveryService
from hookrelay.services.webhook_dispatcher import DeliveryConflictError

router = APIRouter()

NOT_FOUND = {404: {"description": "Webhook delivery not found"}}


def _to_http_error(error: ValueError) -> HTTPException:
    detail = str(error)
    if isinstance(error, DeliveryConflictError):
        return HTTPException(status_code=409, detail=detail)
    if "not found" in detail:
        return HTTPException(status_code=404, detail=detail)
    return HTTPException(status_code=400, detail=detail)


@router.get(
    "/",
    response_model=list[WebhookDeliveryResponse],
    summary="List webhook deliveries",
)
async def list_webhook_deliveries(
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    webhook_endpoint_id: int | None = None,
    status: WebhookDeliveryStatus | None = None,
    event: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    order_by: str | None = Query(default=None, description="field:asc or field:desc"),
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> list[WebhookDelivery]:
    """List deliveries of the workspace's endpoints with optional filters."""
    repo = WebhookDeliveryRepository(db)
    filters = {
        "webhook_endpoint_id": webhook_endpoint_id,
        "status": status.value if status else None,
        "event": event,
        "date_from": date_from,
        "date_to": date_to,
    }
    response.headers["X-Total-Count"] = str(repo.count(workspace_id, **filters))
    return repo.get_all(workspace_id, skip=skip, limit=limit, order_by=order_by, **filters)


@router.post(
    "/",
    response_model=WebhookDeliveryResponse,
    status_code=201,
    summary="Create webhook delivery record",
    responses={404: {"description": "Webhook endpoint not found"}},
)
async def create_webhook_delivery(
    data: WebhookDeliveryCreate,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> WebhookDelivery:
    """Create a delivery record by hand. Nothing is sent."""
    try:
        return WebhookDeliveryService(db).create_delivery(data, workspace_id)
    except ValueError as e:
        raise _to_http_error(e) from None


@router.get(
    "/stats",
    response_model=WebhookDeliveryStats,
    summary="Get delivery stats",
    responses={404: {"description": "Webhook endpoint not found"}},
)
async def get_webhook_delivery_stats(
    webhook_endpoint_id: int | None = None,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> WebhookDeliveryStats:
    """Delivered, failed and pending counts with success rate, optionally for one endpoint."""
    try:
        stats = WebhookDeliveryService(db).get_delivery_stats(workspace_id, webhook_endpoint_id)
    except ValueError as e:
        raise _to_http_error(e) from None
    return WebhookDeliveryStats(**stats)


@router.post(
    "/process_failed",
    response_model=ProcessFailedResponse,
    summary="Retry due failed deliveries",
)
def process_failed_webhook_deliveries(
    db: Session = Depends(get_db),
) -> ProcessFailedResponse:
    """Run one retry sweep across every workspace.

    The sweep is not scoped by ``X-Workspace-Id``; it is meant to be called by
    an external scheduler, like the worker's cron job.
    """
    processed = WebhookDeliveryService(db).process_failed_deliveries()
    return ProcessFailedResponse(
        message=f"Processed {processed} failed deliveries",
        processed_count=processed,
    )


@router.get(
    "/{delivery_id}",
    response_model=WebhookDeliveryResponse,
    summary="Get webhook delivery",
    responses=NOT_FOUND,
)
async def get_webhook_delivery(
    delivery_id: int,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> WebhookDelivery:
    try:
        return WebhookDeliveryService(db).get_delivery(delivery_id, workspace_id)
    except ValueError as e:
        raise _to_http_error(e) from None


@router.put(
    "/{delivery_id}",
    response_model=WebhookDeliveryResponse,
    summary="Update webhook delivery",
    responses={**NOT_FOUND, 400: {"description": "Invalid change"}},
)
async def update_webhook_delivery(
    delivery_id: int,
    data: WebhookDeliveryUpdate,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> WebhookDelivery:
    """Administrative correction of a delivery record."""
    try:
        return WebhookDeliveryService(db).update_delivery(delivery_id, data, workspace_id)
    except ValueError as e:
        raise _to_http_error(e) from None


@router.delete(
    "/{delivery_id}",
    status_code=204,
    summary="Delete webhook delivery",
    responses=NOT_FOUND,
)
async def delete_webhook_delivery(
    delivery_id: int,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> None:
    try:
        WebhookDeliveryService(db).delete_delivery(delivery_id, workspace_id)
    except ValueError as e:
        raise _to_http_error(e) from None


@router.post(
    "/{delivery_id}/retry",
    response_model=WebhookDeliveryResponse,
    summary="Retry failed webhook delivery",
    responses={
        **NOT_FOUND,
        400: {"description": "Only failed deliveries can be retried"},
        409: {"description": "Delivery is already being attempted"},
    },
)
def retry_webhook_delivery(
    delivery_id: int,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> WebhookDelivery:
    """Manually retry a failed delivery, regardless of its retry budget."""
    try:
        return WebhookDeliveryService(db).retry_delivery(delivery_id, workspace_id)
    except ValueError as e:
        raise _to_http_error(e) from None


@router.post(
    "/{delivery_id}/mark_delivered",
    response_model=WebhookDeliveryResponse,
    summary="Mark webhook delivery as delivered",
    responses=NOT_FOUND,
)
async def mark_webhook_delivery_delivered(
    delivery_id: int,
    data: MarkDeliveredRequest,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> WebhookDelivery:
    try:
        return WebhookDeliveryService(db).mark_delivered(
            delivery_id, workspace_id, data.response_code, data.response_body
        )
    except ValueError as e:
        raise _to_http_error(e) from None


@router.post(
    "/{delivery_id}/mark_failed",
    response_model=WebhookDeliveryResponse,
    summary="Mark webhook delivery as failed",
    responses=NOT_FOUND,
)
async def mark_webhook_delivery_failed(
    delivery_id: int,
    data: MarkFailedRequest,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> WebhookDelivery:
    try:
        return WebhookDeliveryService(db).mark_failed(
            delivery_id, workspace_id, data.response_code, data.response_body
        )
    except ValueError as e:
        raise _to_http_error(e) from None
