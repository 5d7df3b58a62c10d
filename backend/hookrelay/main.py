import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hookrelay.core.config import settings
from hookrelay.routers import webhook_deliveries, webhook_endpoints

logging.basicConfig(level=settings.LOG_LEVEL)

OPENAPI_TAGS = [
    {"name": "Webhooks", "description": "Register webhook endpoints and send test events."},
    {"name": "Deliveries", "description": "Inspect, retry and correct webhook deliveries."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Outbound webhook dispatch: endpoint registration, signed delivery, "
        "retries with exponential backoff, and delivery health."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count"],
)

app.include_router(
    webhook_endpoints.router,
    prefix="/v1/webhook_endpoints",
    tags=["Webhooks"],
)
app.include_router(
    webhook_deliveries.router,
    prefix="/v1/webhook_deliveries",
    tags=["Deliveries"],
)


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "domain": settings.APP_DOMAIN,
        "status": "running",
    }
