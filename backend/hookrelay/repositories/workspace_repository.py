"""Workspace repository for data access."""

from uuid import UUID

from sqlalchemy.orm import Session

from hookrelay.models.workspace import Workspace


class WorkspaceRepository:
    """Repository for Workspace model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, workspace_id: UUID) -> Workspace | None:
        return self.db.query(Workspace).filter(Workspace.id == workspace_id).first()

    def get_or_create(self, workspace_id: UUID, name: str = "Default Workspace") -> Workspace:
        """Return the workspace, creating it on first reference."""
        workspace = self.get_by_id(workspace_id)
        if workspace is None:
            workspace = Workspace(id=workspace_id, name=name)
            self.db.add(workspace)
            self.db.commit()
            self.db.refresh(workspace)
        return workspace
