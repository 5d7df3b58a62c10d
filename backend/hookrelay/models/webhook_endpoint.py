"""WebhookEndpoint model for configuring webhook delivery targets."""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String

from hookrelay.core.database import Base
from hookrelay.models.shared import DEFAULT_WORKSPACE_ID, UUIDType, utc_now


class WebhookEndpoint(Base):
    """A third-party URL subscribed to one or more event names."""

    __tablename__ = "webhook_endpoints"

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(
        UUIDType,
        ForeignKey("workspaces.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_WORKSPACE_ID,
    )
    name = Column(String(255), nullable=False)
    url = Column(String(2048), nullable=False)
    secret = Column(String(255), nullable=True)
    events = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    max_retries = Column(Integer, nullable=False, default=5)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    def subscribes_to(self, event: str) -> bool:
        return event in (self.events or [])
