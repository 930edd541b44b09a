"""API-layer configuration loaded from environment variables."""

from __future__ import annotations

from datetime import timedelta
from enum import Enum
from typing import Self

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)


class StoreBackend(str, Enum):
    """Record store implementations selectable at startup."""

    MEMORY = "memory"
    SQL = "sql"


class APISettings(BaseSettings):
    """FastAPI application settings.

    All values can be overridden via environment variables prefixed with
    ``RECAST_`` (e.g. ``RECAST_STORE_BACKEND=memory``) or through a ``.env``
    file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="RECAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Origins permitted by the CORS middleware.
    cors_origins: list[str] = ["http://localhost:3000"]

    # Whether CORS responses include credentials (cookies, auth headers).
    cors_allow_credentials: bool = True

    @model_validator(mode="after")
    def _validate_cors_credentials_not_wildcard(self) -> Self:
        """Reject wildcard origins when credentials are enabled.

        Browsers reject ``Access-Control-Allow-Origin: *`` when credentials
        are allowed, so fail at startup instead of at the first request.
        """
        if self.cors_allow_credentials and "*" in self.cors_origins:
            raise ValueError(
                "Cannot use wildcard origins with credentials. "
                "Specify explicit origins instead of '*' when "
                "cors_allow_credentials=True."
            )
        return self

    # Record store.
    store_backend: StoreBackend = StoreBackend.SQL
    database_url: str = "sqlite+aiosqlite:///.recast/state.db"
    auto_create_tables: bool = True

    # Entitlement.
    free_limit: int = 1
    quota_window_days: int = 30
    strict_quota: bool = False

    # Stripe billing integration.
    stripe_secret_key: SecretStr = SecretStr("")
    stripe_webhook_secret: SecretStr = SecretStr("")
    stripe_price_id: str = ""

    # Content generation (Anthropic).
    llm_api_key: SecretStr | None = None
    llm_model: str = "claude-sonnet-4-5"
    llm_timeout: float = 60.0
    llm_max_tokens: int = 4096
    prompt_max_chars: int = 15_000

    # Source extraction.
    fetch_timeout: float = 15.0
    fetch_max_chars: int = 20_000
    user_agent: str = _BROWSER_USER_AGENT

    # Logging.
    structured_logging: bool = False
    log_level: str = "INFO"

    @property
    def quota_window(self) -> timedelta:
        return timedelta(days=self.quota_window_days)


def load_api_settings() -> APISettings:
    """Construct settings from the environment / ``.env`` file."""
    return APISettings()
