"""Tests for webhook models, schemas and repositories."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from hookrelay.models.shared import as_utc, utc_now
from hookrelay.models.webhook_delivery import WebhookDelivery, WebhookDeliveryStatus
from hookrelay.models.webhook_endpoint import WebhookEndpoint
from hookrelay.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from hookrelay.repositories.webhook_endpoint_repository import WebhookEndpointRepository
from hookrelay.repositories.workspace_repository import WorkspaceRepository
from hookrelay.schemas.webhook_delivery import (
    MarkDeliveredRequest,
    MarkFailedRequest,
    WebhookDeliveryCreate,
    WebhookDeliveryUpdate,
)
from hookrelay.schemas.webhook_endpoint import WebhookEndpointCreate, WebhookEndpointUpdate
from tests.conftest import DEFAULT_WORKSPACE_ID, OTHER_WORKSPACE_ID


@pytest.fixture
def endpoint(db_session):
    """Create an active webhook endpoint."""
    return WebhookEndpointRepository(db_session).create(
        {"name": "Tasks", "url": "https://example.com/hook", "events": ["task.created"]},
        DEFAULT_WORKSPACE_ID,
    )


@pytest.fixture
def delivery(db_session, endpoint):
    """Create a pending delivery."""
    return WebhookDeliveryRepository(db_session).create(
        webhook_endpoint_id=endpoint.id, event="task.created", payload={"id": 1}
    )


class TestWebhookEndpointModel:
    def test_defaults(self, db_session):
        """Test WebhookEndpoint model default values."""
        endpoint = WebhookEndpoint(name="Hook", url="https://example.com/hook")
        db_session.add(endpoint)
        db_session.commit()
        db_session.refresh(endpoint)

        assert endpoint.id is not None
        assert endpoint.workspace_id == DEFAULT_WORKSPACE_ID
        assert endpoint.events == []
        assert endpoint.is_active is True
        assert endpoint.max_retries == 5
        assert endpoint.secret is None
        assert endpoint.created_at is not None

    def test_subscribes_to(self, endpoint):
        assert endpoint.subscribes_to("task.created") is True
        assert endpoint.subscribes_to("task.deleted") is False


class TestWebhookDeliveryModel:
    def test_defaults(self, delivery):
        """Test WebhookDelivery model default values."""
        assert delivery.status == WebhookDeliveryStatus.PENDING.value
        assert delivery.attempts == 0
        assert delivery.response_code is None
        assert delivery.next_attempt_at is None
        assert delivery.created_at is not None


class TestWebhookEndpointSchemas:
    def test_create_valid(self):
        data = WebhookEndpointCreate(
            name="Hook", url="http://localhost:8080/hook", events=["task.created"]
        )
        assert data.max_retries is None
        assert data.secret is None

    def test_create_deduplicates_events(self):
        data = WebhookEndpointCreate(
            name="Hook",
            url="https://example.com/hook",
            events=["task.updated", "task.created", "task.updated"],
        )
        assert data.events == ["task.updated", "task.created"]

    @pytest.mark.parametrize("url", ["example.com/hook", "ftp://example.com", "https://", "mailto:a@b.c"])
    def test_create_rejects_bad_url(self, url):
        with pytest.raises(ValidationError, match="http or https"):
            WebhookEndpointCreate(name="Hook", url=url, events=["task.created"])

    def test_create_rejects_empty_events(self):
        with pytest.raises(ValidationError, match="At least one event"):
            WebhookEndpointCreate(name="Hook", url="https://example.com", events=[])

    def test_create_rejects_unknown_event(self):
        with pytest.raises(ValidationError, match="invoice.paid"):
            WebhookEndpointCreate(name="Hook", url="https://example.com", events=["invoice.paid"])

    @pytest.mark.parametrize("max_retries", [-1, 11])
    def test_create_rejects_max_retries_out_of_range(self, max_retries):
        with pytest.raises(ValidationError):
            WebhookEndpointCreate(
                name="Hook", url="https://example.com", events=["task.created"], max_retries=max_retries
            )

    def test_update_forbids_secret(self):
        with pytest.raises(ValidationError):
            WebhookEndpointUpdate(secret="new")  # type: ignore[call-arg]

    def test_update_partial(self):
        data = WebhookEndpointUpdate(is_active=False)
        assert data.model_dump(exclude_unset=True) == {"is_active": False}


class TestWebhookDeliverySchemas:
    def test_create_defaults(self):
        data = WebhookDeliveryCreate(webhook_endpoint_id=1, event="task.created", payload={})
        assert data.status == WebhookDeliveryStatus.PENDING
        assert data.attempts == 0

    def test_create_rejects_past_next_attempt(self):
        with pytest.raises(ValidationError, match="future"):
            WebhookDeliveryCreate(
                webhook_endpoint_id=1,
                event="task.created",
                payload={},
                next_attempt_at=utc_now() - timedelta(seconds=1),
            )

    @pytest.mark.parametrize("code", [99, 600])
    def test_create_rejects_bad_response_code(self, code):
        with pytest.raises(ValidationError):
            WebhookDeliveryCreate(webhook_endpoint_id=1, event="e", payload={}, response_code=code)

    def test_create_rejects_unknown_status(self):
        with pytest.raises(ValidationError):
            WebhookDeliveryCreate(webhook_endpoint_id=1, event="e", payload={}, status="lost")

    def test_update_forbids_unknown_fields(self):
        with pytest.raises(ValidationError):
            WebhookDeliveryUpdate(webhook_endpoint_id=2)  # type: ignore[call-arg]

    @pytest.mark.parametrize("code", [199, 300, 404])
    def test_mark_delivered_requires_2xx(self, code):
        with pytest.raises(ValidationError):
            MarkDeliveredRequest(response_code=code)

    @pytest.mark.parametrize("code", [200, 399, 600])
    def test_mark_failed_requires_error_code(self, code):
        with pytest.raises(ValidationError):
            MarkFailedRequest(response_code=code, response_body="x")

    def test_mark_failed_requires_body(self):
        with pytest.raises(ValidationError):
            MarkFailedRequest(response_code=500)  # type: ignore[call-arg]


class TestWorkspaceRepository:
    def test_get_or_create_existing(self, db_session):
        workspace = WorkspaceRepository(db_session).get_or_create(DEFAULT_WORKSPACE_ID)
        assert workspace.name == "Default Test Workspace"


class TestWebhookDeliveryRepository:
    def test_claim_attempt(self, db_session, delivery):
        repo = WebhookDeliveryRepository(db_session)
        lease = utc_now() + timedelta(minutes=2)
        assert repo.claim_attempt(delivery.id, 0, "pending", lease) is True
        assert repo.claim_attempt(delivery.id, 0, "pending", lease) is False

        db_session.refresh(delivery)
        assert delivery.attempts == 1
        assert delivery.status == "pending"
        assert as_utc(delivery.next_attempt_at) == lease

    def test_claim_moves_failed_to_pending(self, db_session, endpoint):
        repo = WebhookDeliveryRepository(db_session)
        failed = repo.create(endpoint.id, "task.created", {}, status="failed", attempts=2)
        assert repo.claim_attempt(failed.id, 2, "failed", utc_now()) is True
        db_session.refresh(failed)
        assert failed.status == "pending"
        assert failed.attempts == 3

    def test_claim_requires_expected_status(self, db_session, endpoint):
        repo = WebhookDeliveryRepository(db_session)
        in_flight = repo.create(endpoint.id, "task.created", {}, status="pending", attempts=2)
        assert repo.claim_attempt(in_flight.id, 2, "failed", utc_now()) is False

        delivered = repo.create(endpoint.id, "task.created", {}, status="delivered", attempts=1)
        assert repo.claim_attempt(delivered.id, 1, "delivered", utc_now()) is False

    def test_claim_requires_due_record(self, db_session, endpoint):
        repo = WebhookDeliveryRepository(db_session)
        now = utc_now()
        later = repo.create(
            endpoint.id,
            "task.created",
            {},
            status="failed",
            attempts=2,
            next_attempt_at=now + timedelta(minutes=4),
        )
        assert repo.claim_attempt(later.id, 2, "failed", now, due_at=now) is False
        db_session.refresh(later)
        assert later.attempts == 2

    def test_terminal_write_requires_matching_generation(self, db_session, delivery):
        repo = WebhookDeliveryRepository(db_session)
        repo.claim_attempt(delivery.id, 0, "pending", utc_now())

        assert repo.mark_delivered(delivery.id, 2, 200, "late") is False
        assert repo.mark_delivered(delivery.id, 1, 200, "ok") is True
        assert repo.mark_failed(delivery.id, 1, 500, "too late", utc_now()) is False

        db_session.refresh(delivery)
        assert delivery.status == "delivered"
        assert delivery.response_body == "ok"

    def test_reset_for_retry_only_from_failed(self, db_session, delivery):
        repo = WebhookDeliveryRepository(db_session)
        now = utc_now()
        assert repo.reset_for_retry(delivery.id, 0, now) is False

        repo.update(delivery, {"status": "failed"})
        assert repo.reset_for_retry(delivery.id, 1, now) is False
        assert repo.reset_for_retry(delivery.id, 0, now) is True
        db_session.refresh(delivery)
        assert delivery.status == "pending"
        assert as_utc(delivery.next_attempt_at) == now

    def test_get_all_scoped_and_ordered(self, db_session, endpoint):
        repo = WebhookDeliveryRepository(db_session)
        foreign = WebhookEndpointRepository(db_session).create(
            {"name": "Other", "url": "https://example.com", "events": ["task.created"]},
            OTHER_WORKSPACE_ID,
        )
        first = repo.create(endpoint.id, "task.created", {}, attempts=2)
        second = repo.create(endpoint.id, "project.created", {}, attempts=1)
        repo.create(foreign.id, "task.created", {})

        mine = repo.get_all(DEFAULT_WORKSPACE_ID, order_by="attempts:asc")
        assert [d.id for d in mine] == [second.id, first.id]
        assert repo.count(DEFAULT_WORKSPACE_ID) == 2
        assert repo.count(DEFAULT_WORKSPACE_ID, event="project") == 1
        assert repo.count() == 3

    def test_get_all_date_filters(self, db_session, delivery):
        repo = WebhookDeliveryRepository(db_session)
        hour = timedelta(hours=1)
        assert repo.count(DEFAULT_WORKSPACE_ID, date_from=utc_now() - hour) == 1
        assert repo.count(DEFAULT_WORKSPACE_ID, date_from=utc_now() + hour) == 0
        assert repo.count(DEFAULT_WORKSPACE_ID, date_to=utc_now() - hour) == 0

    def test_get_ready_for_retry(self, db_session, endpoint):
        repo = WebhookDeliveryRepository(db_session)
        past = utc_now() - timedelta(minutes=1)
        earlier = utc_now() - timedelta(minutes=2)
        due = repo.create(endpoint.id, "task.created", {}, status="failed", attempts=1, next_attempt_at=past)
        stale = repo.create(
            endpoint.id, "task.created", {}, status="pending", attempts=2, next_attempt_at=earlier
        )
        repo.create(endpoint.id, "task.created", {}, status="failed", attempts=5, next_attempt_at=past)
        repo.create(
            endpoint.id,
            "task.created",
            {},
            status="failed",
            attempts=1,
            next_attempt_at=utc_now() + timedelta(minutes=5),
        )
        # In flight, lease still running
        repo.create(
            endpoint.id,
            "task.created",
            {},
            status="pending",
            attempts=1,
            next_attempt_at=utc_now() + timedelta(minutes=2),
        )
        # Created by hand, never scheduled
        repo.create(endpoint.id, "task.created", {}, status="pending")
        repo.create(endpoint.id, "task.created", {}, status="delivered", attempts=1, next_attempt_at=past)

        ready = repo.get_ready_for_retry(utc_now())
        assert ready == [(stale.id, 2, "pending"), (due.id, 1, "failed")]

    def test_delete_for_endpoint(self, db_session, endpoint, delivery):
        repo = WebhookDeliveryRepository(db_session)
        assert repo.delete_for_endpoint(endpoint.id) == 1
        db_session.commit()
        assert db_session.query(WebhookDelivery).count() == 0
