"""Webhook endpoint registry and event trigger entry point."""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from hookrelay.core.config import settings
from hookrelay.models.webhook_delivery import WebhookDelivery, WebhookDeliveryStatus
from hookrelay.models.webhook_endpoint import WebhookEndpoint
from hookrelay.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from hookrelay.repositories.webhook_endpoint_repository import WebhookEndpointRepository
from hookrelay.repositories.workspace_repository import WorkspaceRepository
from hookrelay.schemas.webhook_endpoint import WebhookEndpointCreate, WebhookEndpointUpdate
from hookrelay.services.webhook_dispatcher import (
    DeliveryConflictError,
    WebhookDispatcher,
    claim_lease_deadline,
)
from hookrelay.services.webhook_signature import generate_webhook_secret

logger = logging.getLogger(__name__)


class EndpointInUseError(ValueError):
    """Raised when deleting an endpoint that still has deliveries."""


class WebhookService:
    """Service for webhook endpoint management and event fan-out."""

    def __init__(self, db: Session):
        self.db = db
        self.endpoint_repo = WebhookEndpointRepository(db)
        self.delivery_repo = WebhookDeliveryRepository(db)
        self.workspace_repo = WorkspaceRepository(db)
        self.dispatcher = WebhookDispatcher(db)

    def get_endpoint(self, endpoint_id: int, workspace_id: UUID) -> WebhookEndpoint:
        endpoint = self.endpoint_repo.get_by_id(endpoint_id, workspace_id)
        if endpoint is None:
            raise ValueError("Webhook endpoint not found")
        return endpoint

    def list_endpoints(
        self,
        workspace_id: UUID,
        skip: int = 0,
        limit: int = 100,
        is_active: bool | None = None,
        event: str | None = None,
    ) -> tuple[list[WebhookEndpoint], int]:
        """Endpoints of a workspace and the total matching count."""
        endpoints = self.endpoint_repo.get_all(
            workspace_id, skip=skip, limit=limit, is_active=is_active, event=event
        )
        total = self.endpoint_repo.count(workspace_id, is_active=is_active, event=event)
        return endpoints, total

    def create_endpoint(self, data: WebhookEndpointCreate, workspace_id: UUID) -> WebhookEndpoint:
        """Register an endpoint, generating a secret when none is supplied."""
        self.workspace_repo.get_or_create(workspace_id)

        fields = data.model_dump()
        if not fields.get("secret"):
            fields["secret"] = generate_webhook_secret()
        if fields.get("max_retries") is None:
            fields["max_retries"] = settings.WEBHOOK_DEFAULT_MAX_RETRIES

        endpoint = self.endpoint_repo.create(fields, workspace_id)
        logger.info("Registered webhook endpoint %s for %s", endpoint.id, endpoint.url)
        return endpoint

    def update_endpoint(
        self, endpoint_id: int, data: WebhookEndpointUpdate, workspace_id: UUID,
    ) -> WebhookEndpoint:
        endpoint = self.get_endpoint(endpoint_id, workspace_id)
        changes = {key: value for key, value in data.model_dump(exclude_unset=True).items() if value is not None}
        return self.endpoint_repo.update(endpoint, changes)

    def rotate_secret(self, endpoint_id: int, workspace_id: UUID) -> WebhookEndpoint:
        """Replace the signing secret. The only way a secret ever changes."""
        endpoint = self.get_endpoint(endpoint_id, workspace_id)
        endpoint = self.endpoint_repo.set_secret(endpoint, generate_webhook_secret())
        logger.info("Rotated secret of webhook endpoint %s", endpoint.id)
        return endpoint

    def toggle_endpoint(self, endpoint_id: int, workspace_id: UUID) -> WebhookEndpoint:
        return self.endpoint_repo.toggle_active(self.get_endpoint(endpoint_id, workspace_id))

    def delete_endpoint(self, endpoint_id: int, workspace_id: UUID, cascade: bool = False) -> None:
        """Delete an endpoint.

        With ``cascade`` its deliveries go too; without it an endpoint that
        has any deliveries is kept and EndpointInUseError is raised.
        """
        endpoint = self.get_endpoint(endpoint_id, workspace_id)
        if self.delivery_repo.count_for_endpoint(endpoint_id):
            if not cascade:
                raise EndpointInUseError(
                    "Webhook endpoint has deliveries; deactivate it or delete with cascade"
                )
            removed = self.delivery_repo.delete_for_endpoint(endpoint_id)
            logger.info("Deleted %d deliveries of webhook endpoint %s", removed, endpoint_id)
        self.endpoint_repo.delete(endpoint)

    def trigger_webhooks(
        self,
        event: str,
        payload: dict[str, Any] | None = None,
        workspace_id: UUID | None = None,
    ) -> list[WebhookDelivery]:
        """Fan an event out to every active endpoint subscribed to it.

        One PENDING delivery is created per endpoint and attempted right away.
        A failed first attempt is left to the retry sweep; an error on one
        endpoint never stops the others.

        Returns:
            The deliveries created, one per matching endpoint.
        """
        if payload is None:
            payload = {}

        endpoints = self.endpoint_repo.get_active_for_event(event, workspace_id)
        # The lease lets the retry sweep pick up deliveries whose first
        # attempt never started.
        lease_until = claim_lease_deadline()
        deliveries = [
            self.delivery_repo.create(
                webhook_endpoint_id=int(endpoint.id),
                event=event,
                payload=payload,
                next_attempt_at=lease_until,
            )
            for endpoint in endpoints
        ]

        for delivery in deliveries:
            delivery_id = delivery.id
            try:
                self.dispatcher.attempt(
                    delivery,
                    expected_attempts=0,
                    expected_status=WebhookDeliveryStatus.PENDING.value,
                )
            except DeliveryConflictError:
                continue
            except Exception:
                logger.exception("First attempt of webhook delivery %s aborted", delivery_id)
                self.db.rollback()

        if deliveries:
            logger.info("Triggered %s for %d endpoint(s)", event, len(deliveries))
        return deliveries

    def trigger(
        self,
        event: str,
        payload: dict[str, Any] | None = None,
        workspace_id: UUID | None = None,
    ) -> int:
        """Number-of-deliveries form of trigger_webhooks."""
        return len(self.trigger_webhooks(event, payload, workspace_id))

    def test_endpoint(self, endpoint_id: int, workspace_id: UUID) -> dict[str, Any]:
        """Send a synthetic event to the endpoint; nothing is persisted."""
        return self.dispatcher.send_test_event(self.get_endpoint(endpoint_id, workspace_id))
