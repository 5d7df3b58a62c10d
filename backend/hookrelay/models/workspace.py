from sqlalchemy import Column, DateTime, String

from hookrelay.core.database import Base
from hookrelay.models.shared import UUIDType, generate_uuid, utc_now


class Workspace(Base):
    """Tenant that owns webhook endpoints."""

    __tablename__ = "workspaces"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
