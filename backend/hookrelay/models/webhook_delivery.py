"""WebhookDelivery model tracking the dispatch of one event to one endpoint."""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text

from hookrelay.core.database import Base
from hookrelay.models.shared import utc_now


class WebhookDeliveryStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class WebhookDelivery(Base):
    """One attempt-series for a single event sent to a single endpoint.

    ``attempts`` only ever grows. A delivered record is terminal and never has
    a ``next_attempt_at``.
    """

    __tablename__ = "webhook_deliveries"
    __table_args__ = (
        Index("ix_webhook_deliveries_webhook_endpoint_id", "webhook_endpoint_id"),
        Index("ix_webhook_deliveries_event", "event"),
        Index("ix_webhook_deliveries_status", "status"),
        Index("ix_webhook_deliveries_status_next_attempt_at", "status", "next_attempt_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    webhook_endpoint_id = Column(
        Integer,
        ForeignKey("webhook_endpoints.id", ondelete="RESTRICT"),
        nullable=False,
    )
    event = Column(String(255), nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default=WebhookDeliveryStatus.PENDING.value)
    attempts = Column(Integer, nullable=False, default=0)
    response_code = Column(Integer, nullable=True)
    response_body = Column(Text, nullable=True)
    next_attempt_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
