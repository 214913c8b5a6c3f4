"""
Shared configuration management for the helpdesk portal.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


class CacheTTLSettings(BaseModel):
    """Named cache lifetimes in milliseconds. Every value must be positive."""

    search_results_ttl_ms: int = Field(default=2 * MINUTE_MS, gt=0)
    current_year_active_ticket_list_ttl_ms: int = Field(default=15 * MINUTE_MS, gt=0)
    current_year_active_ticket_detail_ttl_ms: int = Field(default=15 * MINUTE_MS, gt=0)
    current_year_closed_ticket_list_ttl_ms: int = Field(default=4 * HOUR_MS, gt=0)
    current_year_closed_ticket_detail_ttl_ms: int = Field(default=4 * HOUR_MS, gt=0)
    archived_ticket_list_ttl_ms: int = Field(default=30 * DAY_MS, gt=0)
    archived_ticket_detail_ttl_ms: int = Field(default=30 * DAY_MS, gt=0)
    request_type_ttl_ms: int = Field(default=DAY_MS, gt=0)
    kb_article_ttl_ms: int = Field(default=5 * MINUTE_MS, gt=0)


class KnowledgeBaseSettings(BaseModel):
    """Knowledge base search parameters."""

    id: int = 1
    locale: str = "en-us"
    flavor: str = "public"


class PortalConfig(BaseSettings):
    """Portal configuration loaded from the environment (prefix ``HELPDESK_``)."""

    model_config = SettingsConfigDict(
        env_prefix="HELPDESK_",
        env_file=".env",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Ticketing API
    api_base_url: str = "http://localhost:3000/api/v1"
    api_timeout_ms: int = Field(default=10000, gt=0)
    api_max_timeout_ms: int = Field(default=60000, gt=0)
    api_retry_attempts: int = Field(default=3, ge=0)
    api_max_retry_attempts: int = Field(default=5, ge=0)
    retry_delay_ms: int = Field(default=500, ge=0)

    # Cache
    cache_sweep_interval_ms: int = Field(default=MINUTE_MS, gt=0)
    cache_storage_prefix: str = "helpdesk_cache:"
    redis_url: Optional[str] = None
    cache: CacheTTLSettings = Field(default_factory=CacheTTLSettings)

    # Ticket filters
    status_categories: Dict[str, List[int]] = Field(default_factory=lambda: {
        "active": [1, 2, 3, 8, 9, 10, 13, 15],
        "closed": [4],
        "inactive": [5, 7],
    })
    closed_state_id: int = 4
    default_status_filter: str = "active"
    default_sort_order: str = "date_desc"
    default_group: str = "Users"
    allow_request_type: bool = False
    allowed_request_types: List[str] = Field(default_factory=list)

    # Knowledge base
    search_min_length: int = Field(default=3, ge=1)
    knowledge_base: KnowledgeBaseSettings = Field(default_factory=KnowledgeBaseSettings)

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("status_categories")
    @classmethod
    def _require_core_categories(cls, value: Dict[str, List[int]]) -> Dict[str, List[int]]:
        for category in ("active", "closed"):
            if not value.get(category):
                raise ValueError(f"status_categories.{category} is required")
        return value

    @model_validator(mode="after")
    def _check_bounds(self) -> "PortalConfig":
        if self.api_retry_attempts > self.api_max_retry_attempts:
            raise ValueError("api_retry_attempts must not exceed api_max_retry_attempts")
        if self.api_timeout_ms > self.api_max_timeout_ms:
            raise ValueError("api_timeout_ms must not exceed api_max_timeout_ms")
        return self


def get_config(**overrides) -> PortalConfig:
    """Get a validated portal configuration."""
    return PortalConfig(**overrides)
