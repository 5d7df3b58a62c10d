"""Single-attempt webhook dispatch.

The dispatcher performs exactly one HTTP attempt per call and classifies the
outcome. It never decides whether a delivery *should* be retried: the retry
budget belongs to the retry sweep.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any

import httpx
from sqlalchemy.orm import Session

from hookrelay.core.config import settings
from hookrelay.models.shared import as_utc, utc_now
from hookrelay.models.webhook_delivery import WebhookDelivery
from hookrelay.models.webhook_endpoint import WebhookEndpoint
from hookrelay.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from hookrelay.repositories.webhook_endpoint_repository import WebhookEndpointRepository
from hookrelay.services.webhook_signature import SIGNATURE_HEADER, canonical_json, sign_payload

logger = logging.getLogger(__name__)

TEST_EVENT = "webhook.test"

# Status code recorded when no HTTP response was obtained
TRANSPORT_FAILURE_STATUS = 0


class DeliveryConflictError(ValueError):
    """Raised when another worker has already advanced the delivery."""


def compute_next_attempt_at(attempts: int, now: datetime | None = None) -> datetime:
    """Backoff of 2^attempts minutes, keyed to the post-increment counter."""
    return (now or utc_now()) + timedelta(minutes=2**attempts)


def claim_lease_deadline(now: datetime | None = None) -> datetime:
    """Time after which an unfinished claimed attempt may be reclaimed."""
    return (now or utc_now()) + timedelta(seconds=settings.WEBHOOK_CLAIM_LEASE_SECONDS)


def build_envelope(delivery: WebhookDelivery) -> dict[str, Any]:
    """Wire body for a delivery: event, payload, delivery id and timestamp."""
    created_at = as_utc(delivery.created_at) or utc_now()  # type: ignore[arg-type]
    return {
        "event": delivery.event,
        "payload": delivery.payload,
        "delivery_id": delivery.id,
        "timestamp": created_at.isoformat(),
    }


def _excerpt(text: str | None) -> str | None:
    if not text:
        return None
    return text[: settings.WEBHOOK_RESPONSE_BODY_LIMIT]


def _describe(exc: Exception) -> str:
    detail = str(exc)
    name = type(exc).__name__
    return f"{name}: {detail}" if detail else name


def _test_failure(exc: Exception) -> dict[str, Any]:
    return {
        "success": False,
        "status": TRANSPORT_FAILURE_STATUS,
        "response_time": None,
        "message": f"Webhook test failed: {_describe(exc)}",
    }


class WebhookDispatcher:
    """Sends one signed delivery attempt and records its outcome."""

    def __init__(self, db: Session):
        self.db = db
        self.delivery_repo = WebhookDeliveryRepository(db)
        self.endpoint_repo = WebhookEndpointRepository(db)

    def build_headers(
        self,
        endpoint: WebhookEndpoint,
        body: bytes,
        event: str,
        delivery_id: int | None = None,
    ) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": settings.WEBHOOK_USER_AGENT,
            "X-Webhook-Event": event,
        }
        if delivery_id is not None:
            headers["X-Webhook-Delivery"] = str(delivery_id)
        if endpoint.secret:
            headers[SIGNATURE_HEADER] = sign_payload(body, str(endpoint.secret))
        return headers

    def _post(self, url: str, body: bytes, headers: dict[str, str], timeout: float) -> httpx.Response:
        with httpx.Client(timeout=timeout) as client:
            return client.post(url, content=body, headers=headers)

    def attempt(
        self,
        delivery: WebhookDelivery,
        expected_attempts: int | None = None,
        expected_status: str | None = None,
        due_at: datetime | None = None,
    ) -> WebhookDelivery:
        """Perform one delivery attempt.

        The attempt counter is claimed and persisted before any network I/O.
        The claim only succeeds while the row still has ``expected_attempts``
        and ``expected_status`` (and, with ``due_at``, is due by then). Callers
        that selected the delivery earlier pass the values they saw; otherwise
        the delivery's current values are used. If the claim loses against a
        concurrent attempt the request is not sent and DeliveryConflictError
        is raised.

        Returns:
            The delivery, refreshed after its terminal write.
        """
        delivery_id = int(delivery.id)
        if expected_attempts is None:
            expected_attempts = int(delivery.attempts)
        if expected_status is None:
            expected_status = str(delivery.status)

        claimed = self.delivery_repo.claim_attempt(
            delivery_id,
            expected_attempts,
            expected_status,
            lease_until=claim_lease_deadline(),
            due_at=due_at,
        )
        if not claimed:
            logger.info(
                "Delivery %s was advanced by another worker (expected attempts=%d, status=%s), skipping",
                delivery_id,
                expected_attempts,
                expected_status,
            )
            raise DeliveryConflictError(f"Delivery {delivery_id} is already being attempted")

        attempts = expected_attempts + 1
        self.db.refresh(delivery)

        endpoint = self.endpoint_repo.get_by_id(int(delivery.webhook_endpoint_id))
        if endpoint is None:
            logger.error(
                "Endpoint %s not found for delivery %s", delivery.webhook_endpoint_id, delivery_id
            )
            return self._record_failure(delivery, attempts, TRANSPORT_FAILURE_STATUS, "Endpoint not found")

        body = canonical_json(build_envelope(delivery))
        headers = self.build_headers(endpoint, body, str(delivery.event), delivery_id)

        try:
            resp = self._post(str(endpoint.url), body, headers, settings.WEBHOOK_TIMEOUT_SECONDS)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning(
                "Webhook delivery %s to %s failed (attempt %d): %s",
                delivery_id,
                endpoint.url,
                attempts,
                exc,
            )
            return self._record_failure(delivery, attempts, TRANSPORT_FAILURE_STATUS, _describe(exc))
        except Exception as exc:
            logger.exception("Unexpected error delivering webhook %s", delivery_id)
            return self._record_failure(delivery, attempts, TRANSPORT_FAILURE_STATUS, _describe(exc))

        if 200 <= resp.status_code < 300:
            logger.info(
                "Webhook delivery %s to %s succeeded with %d (attempt %d)",
                delivery_id,
                endpoint.url,
                resp.status_code,
                attempts,
            )
            written = self.delivery_repo.mark_delivered(
                delivery_id, attempts, resp.status_code, _excerpt(resp.text)
            )
            return self._after_terminal_write(delivery, written)

        logger.warning(
            "Webhook delivery %s to %s returned %d (attempt %d)",
            delivery_id,
            endpoint.url,
            resp.status_code,
            attempts,
        )
        return self._record_failure(delivery, attempts, resp.status_code, _excerpt(resp.text))

    def _record_failure(
        self,
        delivery: WebhookDelivery,
        attempts: int,
        response_code: int,
        response_body: str | None,
    ) -> WebhookDelivery:
        written = self.delivery_repo.mark_failed(
            int(delivery.id),
            attempts,
            response_code,
            response_body,
            compute_next_attempt_at(attempts),
        )
        return self._after_terminal_write(delivery, written)

    def _after_terminal_write(self, delivery: WebhookDelivery, written: bool) -> WebhookDelivery:
        if not written:
            logger.warning(
                "Delivery %s changed while its attempt was in flight, outcome not recorded",
                delivery.id,
            )
        self.db.refresh(delivery)
        return delivery

    def send_test_event(self, endpoint: WebhookEndpoint) -> dict[str, Any]:
        """Send a synthetic event to an endpoint without persisting anything.

        Always a single attempt with the test timeout.
        """
        envelope = {
            "event": TEST_EVENT,
            "payload": {
                "message": "This is a test webhook payload",
                "webhook_id": endpoint.id,
            },
            "delivery_id": None,
            "timestamp": utc_now().isoformat(),
        }
        body = canonical_json(envelope)
        headers = self.build_headers(endpoint, body, TEST_EVENT)

        started = time.perf_counter()
        try:
            resp = self._post(str(endpoint.url), body, headers, settings.WEBHOOK_TEST_TIMEOUT_SECONDS)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.info("Webhook test for endpoint %s failed: %s", endpoint.id, exc)
            return _test_failure(exc)
        except Exception as exc:
            logger.exception("Unexpected error testing webhook endpoint %s", endpoint.id)
            return _test_failure(exc)
        elapsed = round(time.perf_counter() - started, 3)

        success = 200 <= resp.status_code < 300
        logger.info(
            "Webhook test for endpoint %s returned %d in %.3fs", endpoint.id, resp.status_code, elapsed
        )
        return {
            "success": success,
            "status": resp.status_code,
            "response_time": elapsed,
            "message": "Webhook test successful" if success else "Webhook test failed",
        }
