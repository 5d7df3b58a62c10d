"""Delivery records: administration, manual overrides, retries and stats."""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from hookrelay.models.shared import utc_now
from hookrelay.models.webhook_delivery import WebhookDelivery, WebhookDeliveryStatus
from hookrelay.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from hookrelay.repositories.webhook_endpoint_repository import WebhookEndpointRepository
from hookrelay.schemas.webhook_delivery import WebhookDeliveryCreate, WebhookDeliveryUpdate
from hookrelay.services.webhook_dispatcher import (
    DeliveryConflictError,
    WebhookDispatcher,
    compute_next_attempt_at,
)

logger = logging.getLogger(__name__)


def success_rate(delivered: int, total: int) -> float:
    """Percentage of delivered records, two decimals, 0 when there are none."""
    if total <= 0:
        return 0.0
    return round(delivered / total * 100, 2)


class WebhookDeliveryService:
    """Service for webhook delivery records."""

    def __init__(self, db: Session):
        self.db = db
        self.delivery_repo = WebhookDeliveryRepository(db)
        self.endpoint_repo = WebhookEndpointRepository(db)
        self.dispatcher = WebhookDispatcher(db)

    def get_delivery(self, delivery_id: int, workspace_id: UUID | None = None) -> WebhookDelivery:
        delivery = self.delivery_repo.get_by_id(delivery_id, workspace_id)
        if delivery is None:
            raise ValueError(f"Webhook delivery {delivery_id} not found")
        return delivery

    def create_delivery(self, data: WebhookDeliveryCreate, workspace_id: UUID) -> WebhookDelivery:
        """Create a delivery record by hand. No dispatch happens."""
        endpoint = self.endpoint_repo.get_by_id(data.webhook_endpoint_id, workspace_id)
        if endpoint is None:
            raise ValueError(f"Webhook endpoint {data.webhook_endpoint_id} not found")

        fields = data.model_dump(exclude={"webhook_endpoint_id", "event", "payload"})
        fields["status"] = data.status.value
        if data.status == WebhookDeliveryStatus.DELIVERED:
            fields["next_attempt_at"] = None

        return self.delivery_repo.create(
            webhook_endpoint_id=int(endpoint.id),
            event=data.event,
            payload=data.payload,
            **fields,
        )

    def update_delivery(
        self, delivery_id: int, data: WebhookDeliveryUpdate, workspace_id: UUID,
    ) -> WebhookDelivery:
        """Administrative partial update.

        The attempt counter can only grow, and a delivered record never keeps
        a next attempt time.
        """
        delivery = self.get_delivery(delivery_id, workspace_id)
        changes = data.model_dump(exclude_unset=True)
        for required in ("event", "payload", "status", "attempts"):
            if required in changes and changes[required] is None:
                del changes[required]

        if "attempts" in changes and changes["attempts"] < int(delivery.attempts):
            raise ValueError("Attempt count cannot be decreased")
        if "status" in changes:
            changes["status"] = WebhookDeliveryStatus(changes["status"]).value
        if changes.get("status", delivery.status) == WebhookDeliveryStatus.DELIVERED.value:
            changes["next_attempt_at"] = None

        return self.delivery_repo.update(delivery, changes)

    def delete_delivery(self, delivery_id: int, workspace_id: UUID) -> None:
        self.delivery_repo.delete(self.get_delivery(delivery_id, workspace_id))

    def mark_delivered(
        self,
        delivery_id: int,
        workspace_id: UUID,
        response_code: int,
        response_body: str | None = None,
    ) -> WebhookDelivery:
        """Operator override: record a delivery as delivered."""
        delivery = self.get_delivery(delivery_id, workspace_id)
        return self.delivery_repo.update(
            delivery,
            {
                "status": WebhookDeliveryStatus.DELIVERED.value,
                "response_code": response_code,
                "response_body": response_body,
                "next_attempt_at": None,
            },
        )

    def mark_failed(
        self,
        delivery_id: int,
        workspace_id: UUID,
        response_code: int,
        response_body: str,
    ) -> WebhookDelivery:
        """Operator override: record a delivery as failed and schedule its retry."""
        delivery = self.get_delivery(delivery_id, workspace_id)
        return self.delivery_repo.update(
            delivery,
            {
                "status": WebhookDeliveryStatus.FAILED.value,
                "response_code": response_code,
                "response_body": response_body,
                "next_attempt_at": compute_next_attempt_at(int(delivery.attempts)),
            },
        )

    def retry_delivery(self, delivery_id: int, workspace_id: UUID | None = None) -> WebhookDelivery:
        """Force an immediate attempt of a FAILED delivery.

        Ignores the endpoint's retry budget. Anything other than a FAILED
        delivery is rejected without touching the record.
        """
        delivery = self.get_delivery(delivery_id, workspace_id)
        if delivery.status != WebhookDeliveryStatus.FAILED.value:
            raise ValueError("Only failed deliveries can be retried")

        attempts = int(delivery.attempts)
        if not self.delivery_repo.reset_for_retry(delivery_id, attempts, utc_now()):
            raise DeliveryConflictError(f"Delivery {delivery_id} is already being retried")

        self.db.refresh(delivery)
        return self.dispatcher.attempt(
            delivery,
            expected_attempts=attempts,
            expected_status=WebhookDeliveryStatus.PENDING.value,
        )

    def process_failed_deliveries(self) -> int:
        """Re-attempt every failed delivery that is due and within budget.

        Deliveries whose claimed attempt never finished (the claim lease
        expired) are picked up again too. Each claim is checked against the
        state seen when the sweep selected the delivery, so one that another
        worker has since claimed, or rescheduled, is skipped. Attempts run one
        after another; an unexpected error on one delivery does not stop the
        others.

        Returns:
            Number of deliveries attempted by this sweep.
        """
        now = utc_now()
        due = self.delivery_repo.get_ready_for_retry(now)
        processed = 0

        for delivery_id, attempts, status in due:
            try:
                delivery = self.delivery_repo.get_by_id(delivery_id)
                if delivery is None:
                    continue
                self.dispatcher.attempt(
                    delivery,
                    expected_attempts=attempts,
                    expected_status=status,
                    due_at=now,
                )
            except DeliveryConflictError:
                continue
            except Exception:
                logger.exception("Retry of webhook delivery %s aborted", delivery_id)
                self.db.rollback()
                continue
            processed += 1

        if processed:
            logger.info("Processed %d of %d due failed deliveries", processed, len(due))
        return processed

    def get_delivery_stats(
        self,
        workspace_id: UUID | None = None,
        webhook_endpoint_id: int | None = None,
    ) -> dict[str, Any]:
        """Delivered/failed/pending counts and success rate.

        Scoped to one endpoint when ``webhook_endpoint_id`` is given, otherwise
        to every endpoint of the workspace.
        """
        if webhook_endpoint_id is not None and workspace_id is not None:
            if self.endpoint_repo.get_by_id(webhook_endpoint_id, workspace_id) is None:
                raise ValueError(f"Webhook endpoint {webhook_endpoint_id} not found")

        counts = self.delivery_repo.status_counts(workspace_id, webhook_endpoint_id)
        return {**counts, "success_rate": success_rate(counts["delivered"], counts["total"])}

    def get_stats_by_endpoint(self, workspace_id: UUID) -> list[dict[str, Any]]:
        """The same figures broken down per endpoint."""
        return [
            {**counts, "success_rate": success_rate(counts["delivered"], counts["total"])}
            for counts in self.delivery_repo.status_counts_by_endpoint(workspace_id)
        ]
