"""Shared test fixtures for all test modules."""

import contextlib
import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from hookrelay.core import database as db_module
from hookrelay.core.database import Base, get_db
from hookrelay.models import Workspace

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

# Well-known default workspace ID used across all tests
DEFAULT_WORKSPACE_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
OTHER_WORKSPACE_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")


def _seed_workspaces(session: Session) -> None:
    """Insert the default workspace and a second tenant used by isolation tests."""
    for workspace_id, name in (
        (DEFAULT_WORKSPACE_ID, "Default Test Workspace"),
        (OTHER_WORKSPACE_ID, "Other Test Workspace"),
    ):
        if session.query(Workspace).filter(Workspace.id == workspace_id).first() is None:
            session.add(Workspace(id=workspace_id, name=name))
    session.commit()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    session = _TestSessionLocal()
    try:
        _seed_workspaces(session)
    finally:
        session.close()

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session():
    """Create a database session for direct repository and service testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def default_workspace_id():
    """Return the default workspace ID for tests."""
    return DEFAULT_WORKSPACE_ID


def mock_http_client(status_code: int = 200, body: str = "OK", side_effect=None):
    """Build a stand-in for ``httpx.Client`` used as a context manager.

    Returns the client class mock and the client instance whose ``post`` the
    test can inspect.
    """
    mock_client = MagicMock()
    mock_client.__enter__ = MagicMock(return_value=mock_client)
    mock_client.__exit__ = MagicMock(return_value=False)
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_response = MagicMock()
        mock_response.status_code = status_code
        mock_response.text = body
        mock_client.post.return_value = mock_response
    mock_client_cls = MagicMock(return_value=mock_client)
    return mock_client_cls, mock_client
