from hookrelay.models.webhook_delivery import WebhookDelivery, WebhookDeliveryStatus
from hookrelay.models.webhook_endpoint import WebhookEndpoint
from hookrelay.models.workspace import Workspace

__all__ = [
    "WebhookDelivery",
    "WebhookDeliveryStatus",
    "WebhookEndpoint",
    "Workspace",
]
