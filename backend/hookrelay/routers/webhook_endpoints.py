"""Webhook Endpoint API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from hookrelay.core.auth import get_current_workspace
from hookrelay.core.database import get_db
from hookrelay.models.webhook_endpoint import WebhookEndpoint
from hookrelay.schemas.webhook_endpoint import (
    EndpointDeliveryStats,
    WebhookEndpointCreate,
    WebhookEndpointResponse,
    WebhookEndpointSecretResponse,
    WebhookEndpointUpdate,
    WebhookTestResponse,
    WebhookTestResult,
)
from hookrelay.services.webhook_delivery_service import WebhookDeliveryService
from hookrelay.services.webhook_service import EndpointInUseError, WebhookService

router = APIRouter()

NOT_FOUND = {404: {"description": "Webhook endpoint not found"}}


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Webhook endpoint not found")


@router.post(
    "/",
    response_model=WebhookEndpointSecretResponse,
    status_code=201,
    summary="Create webhook endpoint",
    responses={422: {"description": "Validation error"}},
)
async def create_webhook_endpoint(
    data: WebhookEndpointCreate,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> WebhookEndpoint:
    """Register a webhook endpoint. The response is the only one carrying the secret."""
    return WebhookService(db).create_endpoint(data, workspace_id)


@router.get(
    "/",
    response_model=list[WebhookEndpointResponse],
    summary="List webhook endpoints",
)
async def list_webhook_endpoints(
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    is_active: bool | None = None,
    event: str | None = None,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> list[WebhookEndpoint]:
    """List webhook endpoints, optionally filtered by active flag or subscribed event."""
    endpoints, total = WebhookService(db).list_endpoints(
        workspace_id, skip=skip, limit=limit, is_active=is_active, event=event
    )
    response.headers["X-Total-Count"] = str(total)
    return endpoints


@router.get(
    "/delivery_stats",
    response_model=list[EndpointDeliveryStats],
    summary="Get delivery stats per endpoint",
)
async def get_delivery_stats(
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> list[EndpointDeliveryStats]:
    """Get delivered/failed/pending counts grouped by webhook endpoint."""
    stats = WebhookDeliveryService(db).get_stats_by_endpoint(workspace_id)
    return [EndpointDeliveryStats(**s) for s in stats]


@router.get(
    "/{endpoint_id}",
    response_model=WebhookEndpointResponse,
    summary="Get webhook endpoint",
    responses=NOT_FOUND,
)
async def get_webhook_endpoint(
    endpoint_id: int,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> WebhookEndpoint:
    """Get a webhook endpoint by ID."""
    try:
        return WebhookService(db).get_endpoint(endpoint_id, workspace_id)
    except ValueError:
        raise _not_found() from None


@router.put(
    "/{endpoint_id}",
    response_model=WebhookEndpointResponse,
    summary="Update webhook endpoint",
    responses={**NOT_FOUND, 422: {"description": "Validation error"}},
)
async def update_webhook_endpoint(
    endpoint_id: int,
    data: WebhookEndpointUpdate,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> WebhookEndpoint:
    """Partially update a webhook endpoint. The secret cannot be set here."""
    try:
        return WebhookService(db).update_endpoint(endpoint_id, data, workspace_id)
    except ValueError:
        raise _not_found() from None


@router.delete(
    "/{endpoint_id}",
    status_code=204,
    summary="Delete webhook endpoint",
    responses={**NOT_FOUND, 409: {"description": "Endpoint still has deliveries"}},
)
async def delete_webhook_endpoint(
    endpoint_id: int,
    cascade: bool = False,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> None:
    """Delete a webhook endpoint, and with ``cascade`` its delivery history."""
    try:
        WebhookService(db).delete_endpoint(endpoint_id, workspace_id, cascade=cascade)
    except EndpointInUseError as e:
        raise HTTPException(status_code=409, detail=str(e)) from None
    except ValueError:
        raise _not_found() from None


@router.post(
    "/{endpoint_id}/toggle",
    response_model=WebhookEndpointResponse,
    summary="Toggle webhook endpoint active flag",
    responses=NOT_FOUND,
)
async def toggle_webhook_endpoint(
    endpoint_id: int,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> WebhookEndpoint:
    """Activate an inactive endpoint or deactivate an active one."""
    try:
        return WebhookService(db).toggle_endpoint(endpoint_id, workspace_id)
    except ValueError:
        raise _not_found() from None


@router.post(
    "/{endpoint_id}/rotate_secret",
    response_model=WebhookEndpointSecretResponse,
    summary="Rotate webhook endpoint secret",
    responses=NOT_FOUND,
)
async def rotate_webhook_endpoint_secret(
    endpoint_id: int,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> WebhookEndpoint:
    """Generate a new signing secret for the endpoint."""
    try:
        return WebhookService(db).rotate_secret(endpoint_id, workspace_id)
    except ValueError:
        raise _not_found() from None


@router.post(
    "/{endpoint_id}/test",
    response_model=WebhookTestResponse,
    summary="Send a test event",
    responses=NOT_FOUND,
)
def send_test_event(
    endpoint_id: int,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> WebhookTestResponse:
    """Send a synthetic event to the endpoint and report the outcome. Nothing is stored."""
    try:
        result = WebhookService(db).test_endpoint(endpoint_id, workspace_id)
    except ValueError:
        raise _not_found() from None
    return WebhookTestResponse(message="Webhook test completed", result=WebhookTestResult(**result))
