from hookrelay.repositories.webhook_delivery_repository import WebhookDeliveryRepository
from hookrelay.repositories.webhook_endpoint_repository import WebhookEndpointRepository
from hookrelay.repositories.workspace_repository import WorkspaceRepository

__all__ = [
    "WebhookDeliveryRepository",
    "WebhookEndpointRepository",
    "WorkspaceRepository",
]
