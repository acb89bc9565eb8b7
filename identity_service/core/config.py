from __future__ import annotations

import os
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_ALIASES = {"development": "dev", "testing": "test", "production": "prod"}


class BaseAppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "identity-service"
    ENV: str = "dev"
    DATABASE_URL: str | None = None
    FRONTEND_URL: str = "http://localhost:3000"
    BACKEND_URL: str = "http://localhost:8000"
    CORS_ALLOW_ORIGINS: list[str] = ["*"]
    CORS_ALLOW_METHODS: list[str] = ["*"]
    CORS_ALLOW_HEADERS: list[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    HSTS_SECONDS: int = 31_536_000
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "plain"
    SENTRY_DSN: str | None = None

    # Session tokens (HS256)
    JWT_SECRET: str = "change_me"
    JWT_EXPIRES_MINUTES: int = 60 * 24 * 7

    # OAuth 2.0 providers
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GOOGLE_REDIRECT_URL: str | None = None
    FACEBOOK_CLIENT_ID: str | None = None
    FACEBOOK_CLIENT_SECRET: str | None = None
    FACEBOOK_REDIRECT_URL: str | None = None
    LINE_CLIENT_ID: str | None = None
    LINE_CLIENT_SECRET: str | None = None
    LINE_REDIRECT_URL: str | None = None
    OAUTH_HTTP_TIMEOUT_SECONDS: float = 10.0

    # CSRF state cookie set when the authorization URL is requested
    OAUTH_STATE_COOKIE: str = "oauth_state"
    OAUTH_STATE_TTL_SECONDS: int = 300

    # One-time handoff codes
    HANDOFF_TTL_SECONDS: int = 300
    HANDOFF_SWEEP_INTERVAL_SECONDS: float = 60.0

    # Downstream identity sync
    SYNC_USE_EVENTS: bool = True
    REDIS_URL: str | None = None
    SYNC_STREAM_PREFIX: str = "user.events"
    SYNC_STREAM_MAXLEN: int = 100_000
    SYNC_PUBLISH_TIMEOUT_SECONDS: float = 5.0
    SYNC_HTTP_URL: str | None = None
    SYNC_HTTP_TIMEOUT_SECONDS: float = 10.0
    SYNC_MAX_ATTEMPTS: int = 3
    SYNC_BASE_DELAY_SECONDS: float = 1.0
    SYNC_SERVICE_NAME: str = "identity-service"

    def redirect_url_for(self, provider: str) -> str:
        """Configured callback URL for a provider, defaulting to this service's route."""
        configured = getattr(self, f"{provider.upper()}_REDIRECT_URL", None)
        return configured or f"{self.BACKEND_URL}/auth/{provider}/callback"

    @field_validator("ENV", mode="before")
    @classmethod
    def _normalize_env(cls, value: str) -> str:
        name = str(value).strip().lower()
        return _ENV_ALIASES.get(name, name)

    @model_validator(mode="after")
    def _validate_required_fields(self) -> BaseAppSettings:
        if self.DATABASE_URL and self.DATABASE_URL.startswith("postgres://"):
            self.DATABASE_URL = self.DATABASE_URL.replace("postgres://", "postgresql://", 1)

        if self.ENV == "prod":
            missing = [name for name in ("DATABASE_URL", "JWT_SECRET") if not getattr(self, name)]
            if missing:
                raise ValueError(f"Missing required production settings: {', '.join(missing)}")
            if self.JWT_SECRET == "change_me":
                raise ValueError("Insecure default secrets in production: JWT_SECRET uses default placeholder")
        return self


class DevSettings(BaseAppSettings):
    ENV: str = "dev"
    DATABASE_URL: str = "sqlite:///./storage/dev.db"


class TestSettings(BaseAppSettings):
    ENV: str = "test"
    DATABASE_URL: str = "sqlite:///:memory:"
    SYNC_USE_EVENTS: bool = False


class ProdSettings(BaseAppSettings):
    ENV: str = "prod"
    CORS_ALLOW_ORIGINS: list[str] = []
    LOG_FORMAT: str = "json"


_ENV_TO_SETTINGS: dict[str, type[BaseAppSettings]] = {
    "dev": DevSettings,
    "development": DevSettings,
    "test": TestSettings,
    "testing": TestSettings,
    "prod": ProdSettings,
    "production": ProdSettings,
}


@lru_cache
def get_settings() -> BaseAppSettings:
    env_name = os.getenv("APP_ENV") or os.getenv("ENV") or "dev"
    settings_cls = _ENV_TO_SETTINGS.get(env_name.lower(), DevSettings)
    return settings_cls()


settings = get_settings()
