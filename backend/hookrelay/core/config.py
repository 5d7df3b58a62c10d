from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as package_version

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "hookrelay"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    APP_DOMAIN: str = "example.com"
    APP_DATABASE_DSN: str = "sqlite:////tmp/hookrelay.db"
    REDIS_URL: str = "redis://localhost:6379"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Outbound delivery
    WEBHOOK_TIMEOUT_SECONDS: float = 30.0
    WEBHOOK_TEST_TIMEOUT_SECONDS: float = 10.0
    WEBHOOK_USER_AGENT: str = "hookrelay-webhook/1.0"
    WEBHOOK_DEFAULT_MAX_RETRIES: int = 5
    WEBHOOK_RESPONSE_BODY_LIMIT: int = 1000

    # How long a claimed attempt may stay in flight before the sweep reclaims it.
    # Must exceed WEBHOOK_TIMEOUT_SECONDS.
    WEBHOOK_CLAIM_LEASE_SECONDS: int = 120

    # Retry sweep cadence for the background worker, in minutes
    WEBHOOK_RETRY_SWEEP_MINUTES: int = 5

    @property
    def version(self) -> str:
        try:
            return package_version("hookrelay")
        except PackageNotFoundError:
            return "0.0.0"


settings = Settings()
