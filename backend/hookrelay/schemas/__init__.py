from hookrelay.schemas.webhook_delivery import (
    MarkDeliveredRequest,
    MarkFailedRequest,
    ProcessFailedResponse,
    WebhookDeliveryCreate,
    WebhookDeliveryResponse,
    WebhookDeliveryStats,
    WebhookDeliveryUpdate,
)
from hookrelay.schemas.webhook_endpoint import (
    WEBHOOK_EVENT_TYPES,
    EndpointDeliveryStats,
    WebhookEndpointCreate,
    WebhookEndpointResponse,
    WebhookEndpointSecretResponse,
    WebhookEndpointUpdate,
    WebhookTestResponse,
    WebhookTestResult,
)

__all__ = [
    "WEBHOOK_EVENT_TYPES",
    "EndpointDeliveryStats",
    "MarkDeliveredRequest",
    "MarkFailedRequest",
    "ProcessFailedResponse",
    "WebhookDeliveryCreate",
    "WebhookDeliveryResponse",
    "WebhookDeliveryStats",
    "WebhookDeliveryUpdate",
    "WebhookEndpointCreate",
    "WebhookEndpointResponse",
    "WebhookEndpointSecretResponse",
    "WebhookEndpointUpdate",
    "WebhookTestResponse",
    "WebhookTestResult",
]
