from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core_config.constants import (
    CACHE_NAMESPACE,
    EXPAND_EXCLUDED_PREFIX,
    EXPAND_KEY,
    EXPAND_MAX_DEPTH,
    EXPAND_PLACEHOLDER_KEY,
    REMOTE_FETCH_CONCURRENCY,
    TIMEOUT_FETCH_MS,
)

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    service_log_level: str = Field(default="INFO", alias="SERVICE_LOG_LEVEL")

    # Expansion
    expand_key: str = Field(default=EXPAND_KEY, alias="EXPAND_KEY")
    expand_placeholder_key: str = Field(default=EXPAND_PLACEHOLDER_KEY, alias="EXPAND_PLACEHOLDER_KEY")
    expand_max_depth: int = Field(default=EXPAND_MAX_DEPTH, alias="EXPAND_MAX_DEPTH", ge=0)
    expand_excluded_prefix: str = Field(default=EXPAND_EXCLUDED_PREFIX, alias="EXPAND_EXCLUDED_PREFIX")
    # Comma-separated names skipped inside named-reference blocks.
    expand_excluded_keys_raw: str = Field(default="", alias="EXPAND_EXCLUDED_KEYS")

    @property
    def expand_excluded_keys(self) -> frozenset[str]:  # noqa: D401
        """Excluded reference names as a set."""
        return frozenset(x.strip() for x in (self.expand_excluded_keys_raw or "").split(",") if x.strip())

    # Redis (local cache)
    redis_url: str = Field(default="redis://redis:6379/0", alias="REDIS_URL")
    redis_max_connections: int = Field(default=100, alias="REDIS_MAX_CONNECTIONS")
    cache_namespace: str = Field(default=CACHE_NAMESPACE, alias="CACHE_NAMESPACE")

    # Remote origin (fallback on cache miss); unset disables the fallback.
    remote_base_url: Optional[str] = Field(default=None, alias="REMOTE_BASE_URL")
    remote_fetch_concurrency: int = Field(default=REMOTE_FETCH_CONCURRENCY, alias="REMOTE_FETCH_CONCURRENCY", ge=1)
    timeout_fetch_ms: int = Field(default=TIMEOUT_FETCH_MS, alias="TIMEOUT_FETCH_MS", gt=0)
    http_retry: int = Field(default=1, alias="HTTP_RETRY", ge=0)

    @field_validator("expand_key", "expand_placeholder_key")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("field name must not be empty")
        return v

    @field_validator("remote_base_url")
    @classmethod
    def _strip_slash(cls, v: Optional[str]) -> Optional[str]:
        return v.rstrip("/") if v else None

def get_settings() -> "Settings":
    return Settings()  # type: ignore[call-arg]
