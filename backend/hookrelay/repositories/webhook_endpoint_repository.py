"""WebhookEndpoint repository for data access."""

from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from hookrelay.models.webhook_endpoint import WebhookEndpoint


class WebhookEndpointRepository:
    """Repository for WebhookEndpoint model."""

    def __init__(self, db: Session):
        self.db = db

    def _filtered(
        self,
        workspace_id: UUID | None,
        is_active: bool | None = None,
    ) -> Query:  # type: ignore[type-arg]
        query = self.db.query(WebhookEndpoint)
        if workspace_id is not None:
            query = query.filter(WebhookEndpoint.workspace_id == workspace_id)
        if is_active is not None:
            query = query.filter(WebhookEndpoint.is_active.is_(is_active))
        return query.order_by(WebhookEndpoint.created_at.desc(), WebhookEndpoint.id.desc())

    def get_all(
        self,
        workspace_id: UUID,
        skip: int = 0,
        limit: int = 100,
        is_active: bool | None = None,
        event: str | None = None,
    ) -> list[WebhookEndpoint]:
        """Get webhook endpoints of a workspace with optional filters.

        Event subscriptions live in a JSON column, so the event filter is
        applied in Python before paging.
        """
        query = self._filtered(workspace_id, is_active)
        if event is None:
            return query.offset(skip).limit(limit).all()
        matching = [e for e in query.all() if e.subscribes_to(event)]
        return matching[skip : skip + limit]

    def count(
        self,
        workspace_id: UUID,
        is_active: bool | None = None,
        event: str | None = None,
    ) -> int:
        """Count webhook endpoints matching the same filters as get_all."""
        if event is not None:
            return sum(1 for e in self._filtered(workspace_id, is_active).all() if e.subscribes_to(event))
        query = self.db.query(func.count(WebhookEndpoint.id)).filter(
            WebhookEndpoint.workspace_id == workspace_id
        )
        if is_active is not None:
            query = query.filter(WebhookEndpoint.is_active.is_(is_active))
        return query.scalar() or 0

    def get_by_id(
        self, endpoint_id: int, workspace_id: UUID | None = None,
    ) -> WebhookEndpoint | None:
        """Get a webhook endpoint by ID."""
        query = self.db.query(WebhookEndpoint).filter(WebhookEndpoint.id == endpoint_id)
        if workspace_id is not None:
            query = query.filter(WebhookEndpoint.workspace_id == workspace_id)
        return query.first()

    def get_active_for_event(
        self, event: str, workspace_id: UUID | None = None,
    ) -> list[WebhookEndpoint]:
        """Get active endpoints subscribed to ``event``."""
        return [e for e in self._filtered(workspace_id, is_active=True).all() if e.subscribes_to(event)]

    def create(self, data: dict[str, Any], workspace_id: UUID) -> WebhookEndpoint:
        """Create a new webhook endpoint."""
        endpoint = WebhookEndpoint(workspace_id=workspace_id, **data)
        self.db.add(endpoint)
        self.db.commit()
        self.db.refresh(endpoint)
        return endpoint

    def update(self, endpoint: WebhookEndpoint, data: dict[str, Any]) -> WebhookEndpoint:
        """Apply a partial update to a webhook endpoint."""
        for key, value in data.items():
            setattr(endpoint, key, value)

        self.db.commit()
        self.db.refresh(endpoint)
        return endpoint

    def set_secret(self, endpoint: WebhookEndpoint, secret: str) -> WebhookEndpoint:
        """Replace the endpoint's signing secret."""
        endpoint.secret = secret  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(endpoint)
        return endpoint

    def toggle_active(self, endpoint: WebhookEndpoint) -> WebhookEndpoint:
        """Flip the active flag."""
        endpoint.is_active = not endpoint.is_active  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(endpoint)
        return endpoint

    def delete(self, endpoint: WebhookEndpoint) -> None:
        """Delete a webhook endpoint."""
        self.db.delete(endpoint)
        self.db.commit()
