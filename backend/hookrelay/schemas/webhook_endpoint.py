"""WebhookEndpoint schemas."""

from datetime import datetime
from urllib.parse import urlparse
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Event names an endpoint may subscribe to
WEBHOOK_EVENT_TYPES = [
    "task.created",
    "task.updated",
    "task.deleted",
    "project.created",
    "project.updated",
    "user.assigned",
]

MAX_RETRIES_LIMIT = 10


def validate_webhook_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValueError("URL must be an absolute http or https URL")
    return value


def validate_event_names(value: list[str]) -> list[str]:
    if not value:
        raise ValueError("At least one event must be selected")
    unknown = [event for event in value if event not in WEBHOOK_EVENT_TYPES]
    if unknown:
        raise ValueError(f"Invalid event type selected: {', '.join(unknown)}")
    # Keep first-seen order, drop duplicates
    return list(dict.fromkeys(value))


class WebhookEndpointCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    url: str = Field(max_length=2048)
    events: list[str]
    secret: str | None = Field(default=None, min_length=1, max_length=255)
    is_active: bool = True
    max_retries: int | None = Field(default=None, ge=0, le=MAX_RETRIES_LIMIT)

    @field_validator("url")
    @classmethod
    def check_url(cls, value: str) -> str:
        return validate_webhook_url(value)

    @field_validator("events")
    @classmethod
    def check_events(cls, value: list[str]) -> list[str]:
        return validate_event_names(value)


class WebhookEndpointUpdate(BaseModel):
    """Partial update. Secrets change only through rotate_secret."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=255)
    url: str | None = Field(default=None, max_length=2048)
    events: list[str] | None = None
    is_active: bool | None = None
    max_retries: int | None = Field(default=None, ge=0, le=MAX_RETRIES_LIMIT)

    @field_validator("url")
    @classmethod
    def check_url(cls, value: str | None) -> str | None:
        return None if value is None else validate_webhook_url(value)

    @field_validator("events")
    @classmethod
    def check_events(cls, value: list[str] | None) -> list[str] | None:
        return None if value is None else validate_event_names(value)


class WebhookEndpointResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    workspace_id: UUID
    name: str
    url: str
    events: list[str]
    is_active: bool
    max_retries: int
    created_at: datetime
    updated_at: datetime


class WebhookEndpointSecretResponse(WebhookEndpointResponse):
    """Returned only on create and rotate, the two moments the secret is shown."""

    secret: str | None = None


class WebhookTestResult(BaseModel):
    success: bool
    status: int
    response_time: float | None = None
    message: str


class WebhookTestResponse(BaseModel):
    message: str
    result: WebhookTestResult


class EndpointDeliveryStats(BaseModel):
    endpoint_id: int
    total: int
    delivered: int
    failed: int
    pending: int
    success_rate: float
