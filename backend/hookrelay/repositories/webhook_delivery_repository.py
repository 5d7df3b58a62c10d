"""WebhookDelivery repository for data access.

State transitions that can race between workers (the attempt claim, the
terminal write, the manual retry reset) are single-row conditional UPDATEs.
Each returns whether it matched, which is how a caller learns it lost.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import and_, case, func, or_
from sqlalchemy.orm import Query, Session

from hookrelay.core.sorting import apply_order_by
from hookrelay.models.shared import utc_now
from hookrelay.models.webhook_delivery import WebhookDelivery, WebhookDeliveryStatus
from hookrelay.models.webhook_endpoint import WebhookEndpoint

PENDING = WebhookDeliveryStatus.PENDING.value
DELIVERED = WebhookDeliveryStatus.DELIVERED.value
FAILED = WebhookDeliveryStatus.FAILED.value


class WebhookDeliveryRepository:
    """Repository for WebhookDelivery model."""

    def __init__(self, db: Session):
        self.db = db

    def _scoped(self, workspace_id: UUID | None) -> Query:  # type: ignore[type-arg]
        query = self.db.query(WebhookDelivery)
        if workspace_id is not None:
            query = query.join(
                WebhookEndpoint, WebhookEndpoint.id == WebhookDelivery.webhook_endpoint_id
            ).filter(WebhookEndpoint.workspace_id == workspace_id)
        return query

    def _filtered(
        self,
        workspace_id: UUID | None,
        webhook_endpoint_id: int | None = None,
        status: str | None = None,
        event: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> Query:  # type: ignore[type-arg]
        query = self._scoped(workspace_id)
        if webhook_endpoint_id is not None:
            query = query.filter(WebhookDelivery.webhook_endpoint_id == webhook_endpoint_id)
        if status:
            query = query.filter(WebhookDelivery.status == status)
        if event:
            query = query.filter(WebhookDelivery.event.contains(event))
        if date_from is not None:
            query = query.filter(WebhookDelivery.created_at >= date_from)
        if date_to is not None:
            query = query.filter(WebhookDelivery.created_at <= date_to)
        return query

    def create(
        self,
        webhook_endpoint_id: int,
        event: str,
        payload: dict[str, Any],
        **fields: Any,
    ) -> WebhookDelivery:
        """Create a new delivery record, PENDING unless told otherwise."""
        delivery = WebhookDelivery(
            webhook_endpoint_id=webhook_endpoint_id,
            event=event,
            payload=payload,
            **fields,
        )
        self.db.add(delivery)
        self.db.commit()
        self.db.refresh(delivery)
        return delivery

    def get_by_id(
        self, delivery_id: int, workspace_id: UUID | None = None,
    ) -> WebhookDelivery | None:
        """Get a delivery by ID, optionally scoped to a workspace."""
        return self._scoped(workspace_id).filter(WebhookDelivery.id == delivery_id).first()

    def get_all(
        self,
        workspace_id: UUID | None = None,
        skip: int = 0,
        limit: int = 100,
        order_by: str | None = None,
        **filters: Any,
    ) -> list[WebhookDelivery]:
        """Get deliveries with optional filters."""
        query = apply_order_by(self._filtered(workspace_id, **filters), WebhookDelivery, order_by)
        return query.offset(skip).limit(limit).all()

    def count(self, workspace_id: UUID | None = None, **filters: Any) -> int:
        """Count deliveries matching the same filters as get_all."""
        return self._filtered(workspace_id, **filters).count()

    def count_for_endpoint(self, webhook_endpoint_id: int) -> int:
        return (
            self.db.query(func.count(WebhookDelivery.id))
            .filter(WebhookDelivery.webhook_endpoint_id == webhook_endpoint_id)
            .scalar()
            or 0
        )

    def update(self, delivery: WebhookDelivery, data: dict[str, Any]) -> WebhookDelivery:
        """Apply an unconditional partial update (administrative edits)."""
        for key, value in data.items():
            setattr(delivery, key, value)
        self.db.commit()
        self.db.refresh(delivery)
        return delivery

    def delete(self, delivery: WebhookDelivery) -> None:
        self.db.delete(delivery)
        self.db.commit()

    def delete_for_endpoint(self, webhook_endpoint_id: int) -> int:
        """Delete every delivery of an endpoint. Does not commit."""
        return (
            self.db.query(WebhookDelivery)
            .filter(WebhookDelivery.webhook_endpoint_id == webhook_endpoint_id)
            .delete(synchronize_session=False)
        )

    def _compare_and_set(
        self, delivery_id: int, conditions: list[Any], values: dict[str, Any],
    ) -> bool:
        values.setdefault("updated_at", utc_now())
        matched = (
            self.db.query(WebhookDelivery)
            .filter(WebhookDelivery.id == delivery_id, *conditions)
            .update(values, synchronize_session=False)
        )
        self.db.commit()
        return matched == 1

    def claim_attempt(
        self,
        delivery_id: int,
        expected_attempts: int,
        expected_status: str,
        lease_until: datetime,
        due_at: datetime | None = None,
    ) -> bool:
        """Increment the attempt counter if the row still matches our snapshot.

        The record moves to PENDING with ``next_attempt_at`` set to the lease
        deadline. While the lease runs neither the sweep nor a manual retry
        can pick it up; if the worker dies, the sweep reclaims it once the
        lease has expired. With ``due_at`` the claim also requires the record
        to be due at that time.
        """
        conditions = [
            WebhookDelivery.attempts == expected_attempts,
            WebhookDelivery.status == expected_status,
            WebhookDelivery.status.in_([PENDING, FAILED]),
        ]
        if due_at is not None:
            conditions.append(
                or_(
                    WebhookDelivery.next_attempt_at.is_(None),
                    WebhookDelivery.next_attempt_at <= due_at,
                )
            )
        return self._compare_and_set(
            delivery_id,
            conditions,
            {
                "attempts": WebhookDelivery.attempts + 1,
                "status": PENDING,
                "next_attempt_at": lease_until,
            },
        )

    def mark_delivered(
        self,
        delivery_id: int,
        attempts: int,
        response_code: int,
        response_body: str | None,
    ) -> bool:
        """Terminal write for a successful attempt of generation ``attempts``."""
        return self._compare_and_set(
            delivery_id,
            [WebhookDelivery.attempts == attempts, WebhookDelivery.status == PENDING],
            {
                "status": DELIVERED,
                "response_code": response_code,
                "response_body": response_body,
                "next_attempt_at": None,
            },
        )

    def mark_failed(
        self,
        delivery_id: int,
        attempts: int,
        response_code: int,
        response_body: str | None,
        next_attempt_at: datetime,
    ) -> bool:
        """Terminal write for a failed attempt of generation ``attempts``."""
        return self._compare_and_set(
            delivery_id,
            [WebhookDelivery.attempts == attempts, WebhookDelivery.status == PENDING],
            {
                "status": FAILED,
                "response_code": response_code,
                "response_body": response_body,
                "next_attempt_at": next_attempt_at,
            },
        )

    def reset_for_retry(self, delivery_id: int, expected_attempts: int, now: datetime) -> bool:
        """Move a FAILED delivery back to PENDING for an operator retry."""
        return self._compare_and_set(
            delivery_id,
            [WebhookDelivery.status == FAILED, WebhookDelivery.attempts == expected_attempts],
            {"status": PENDING, "next_attempt_at": now},
        )

    def get_ready_for_retry(self, now: datetime) -> list[tuple[int, int, str]]:
        """``(id, attempts, status)`` of deliveries the retry sweep should attempt.

        These are FAILED deliveries that are due, plus PENDING ones whose
        claim lease has expired (their worker died mid-attempt). Both must
        still be inside their endpoint's budget. Deliveries of deactivated
        endpoints are left alone.
        """
        rows = (
            self.db.query(WebhookDelivery.id, WebhookDelivery.attempts, WebhookDelivery.status)
            .join(WebhookEndpoint, WebhookEndpoint.id == WebhookDelivery.webhook_endpoint_id)
            .filter(
                WebhookDelivery.attempts < WebhookEndpoint.max_retries,
                WebhookEndpoint.is_active.is_(True),
                or_(
                    and_(
                        WebhookDelivery.status == FAILED,
                        or_(
                            WebhookDelivery.next_attempt_at.is_(None),
                            WebhookDelivery.next_attempt_at <= now,
                        ),
                    ),
                    and_(
                        WebhookDelivery.status == PENDING,
                        WebhookDelivery.next_attempt_at.is_not(None),
                        WebhookDelivery.next_attempt_at <= now,
                    ),
                ),
            )
            .order_by(WebhookDelivery.next_attempt_at.asc(), WebhookDelivery.id.asc())
            .all()
        )
        return [(int(row.id), int(row.attempts), str(row.status)) for row in rows]

    def status_counts(
        self,
        workspace_id: UUID | None = None,
        webhook_endpoint_id: int | None = None,
    ) -> dict[str, int]:
        """Count deliveries per status in one pass."""
        row = (
            self._filtered(workspace_id, webhook_endpoint_id=webhook_endpoint_id)
            .with_entities(
                func.count(WebhookDelivery.id).label("total"),
                func.sum(case((WebhookDelivery.status == DELIVERED, 1), else_=0)).label("delivered"),
                func.sum(case((WebhookDelivery.status == FAILED, 1), else_=0)).label("failed"),
                func.sum(case((WebhookDelivery.status == PENDING, 1), else_=0)).label("pending"),
            )
            .one()
        )
        return {
            "total": int(row.total or 0),
            "delivered": int(row.delivered or 0),
            "failed": int(row.failed or 0),
            "pending": int(row.pending or 0),
        }

    def status_counts_by_endpoint(self, workspace_id: UUID) -> list[dict[str, int]]:
        """Per-endpoint status counts for every endpoint of a workspace."""
        rows = (
            self.db.query(
                WebhookEndpoint.id.label("endpoint_id"),
                func.count(WebhookDelivery.id).label("total"),
                func.sum(case((WebhookDelivery.status == DELIVERED, 1), else_=0)).label("delivered"),
                func.sum(case((WebhookDelivery.status == FAILED, 1), else_=0)).label("failed"),
                func.sum(case((WebhookDelivery.status == PENDING, 1), else_=0)).label("pending"),
            )
            .outerjoin(WebhookDelivery, WebhookDelivery.webhook_endpoint_id == WebhookEndpoint.id)
            .filter(WebhookEndpoint.workspace_id == workspace_id)
            .group_by(WebhookEndpoint.id)
            .order_by(WebhookEndpoint.id.asc())
            .all()
        )
        return [
            {
                "endpoint_id": int(row.endpoint_id),
                "total": int(row.total or 0),
                "delivered": int(row.delivered or 0),
                "failed": int(row.failed or 0),
                "pending": int(row.pending or 0),
            }
            for row in rows
        ]
