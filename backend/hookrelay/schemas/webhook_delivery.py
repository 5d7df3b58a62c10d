"""WebhookDelivery schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hookrelay.models.shared import as_utc, utc_now
from hookrelay.models.webhook_delivery import WebhookDeliveryStatus

MAX_ATTEMPTS_LIMIT = 10


class WebhookDeliveryCreate(BaseModel):
    webhook_endpoint_id: int
    event: str = Field(min_length=1, max_length=255)
    payload: dict[str, Any]
    response_code: int | None = Field(default=None, ge=100, le=599)
    response_body: str | None = None
    status: WebhookDeliveryStatus = WebhookDeliveryStatus.PENDING
    attempts: int = Field(default=0, ge=0, le=MAX_ATTEMPTS_LIMIT)
    next_attempt_at: datetime | None = None

    @field_validator("next_attempt_at")
    @classmethod
    def next_attempt_in_future(cls, value: datetime | None) -> datetime | None:
        if value is not None and as_utc(value) <= utc_now():  # type: ignore[operator]
            raise ValueError("Next attempt time must be in the future")
        return value


class WebhookDeliveryUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    event: str | None = Field(default=None, min_length=1, max_length=255)
    payload: dict[str, Any] | None = None
    response_code: int | None = Field(default=None, ge=100, le=599)
    response_body: str | None = None
    status: WebhookDeliveryStatus | None = None
    attempts: int | None = Field(default=None, ge=0, le=MAX_ATTEMPTS_LIMIT)
    next_attempt_at: datetime | None = None


class WebhookDeliveryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    webhook_endpoint_id: int
    event: str
    payload: dict[str, Any]
    status: str
    attempts: int
    response_code: int | None = None
    response_body: str | None = None
    next_attempt_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class MarkDeliveredRequest(BaseModel):
    response_code: int = Field(ge=200, le=299)
    response_body: str | None = None


class MarkFailedRequest(BaseModel):
    response_code: int = Field(ge=400, le=599)
    response_body: str


class WebhookDeliveryStats(BaseModel):
    total: int
    delivered: int
    failed: int
    pending: int
    success_rate: float


class ProcessFailedResponse(BaseModel):
    message: str
    processed_count: int
