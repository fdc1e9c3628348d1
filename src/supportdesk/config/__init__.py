"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="supportdesk-sla-engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/supportdesk",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Engine ==========
    breach_scan_enabled: bool = Field(
        default=True,
        description="Run the periodic breach scan in this process"
    )
    breach_scan_interval_seconds: int = Field(
        default=60,
        description="Seconds between breach scans",
        ge=1
    )
    due_date_strategy: Literal["naive", "business_hours"] = Field(
        default="naive",
        description="How due dates are computed from policy targets"
    )
    default_response_minutes: int = Field(
        default=60,
        description="Response target used when a policy omits one",
        ge=1
    )
    default_resolution_minutes: int = Field(
        default=240,
        description="Resolution target used when a policy omits one",
        ge=1
    )
    event_retry_attempts: int = Field(
        default=3,
        description="Attempts for a lifecycle event that hits a version conflict",
        ge=1,
        le=10
    )

    # ========== Notifications ==========
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook receiving agent notification requests"
    )
    broadcast_webhook_url: Optional[str] = Field(
        default=None,
        description="Optional webhook mirroring tenant broadcasts"
    )
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for notification webhook calls",
        ge=0.1,
        le=30
    )

    # ========== Routing ==========
    routing_config_path: Path = Field(
        default=Path("routing_config.yaml"),
        description="Path to routing weights and skill mapping YAML file"
    )
    default_max_concurrent_tickets: int = Field(
        default=5,
        description="Agent capacity used when a profile does not set one",
        ge=1
    )

    # ========== LLM Settings ==========
    llm_provider: Literal["none", "mock", "zai", "openai"] = Field(
        default="none",
        description="Provider used for ticket content analysis"
    )
    zai_api_key: Optional[str] = Field(
        default=None,
        description="Z.AI API key"
    )
    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI API key"
    )
    openai_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for OpenAI-compatible endpoints"
    )
    llm_model: str = Field(
        default="glm-4.7",
        description="Model used for content analysis"
    )
    llm_temperature: float = Field(
        default=0.1,
        description="Temperature for content analysis",
        ge=0.0,
        le=1.0
    )
    llm_max_tokens: int = Field(
        default=300,
        description="Max tokens for content analysis responses",
        ge=1,
        le=8000
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    # ========== Grafana OTLP Metrics ==========
    grafana_host: Optional[str] = Field(
        default=None,
        description="Grafana OTLP gateway URL"
    )
    grafana_api_key: Optional[str] = Field(
        default=None,
        description="Grafana API key for OTLP authentication"
    )
    grafana_instance_id: Optional[str] = Field(
        default=None,
        description="Grafana instance ID for OTLP authentication"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "testing"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class Priority(str, Enum):
    """Policy and ticket priority levels."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SLAStatus(str, Enum):
    """SLA instance lifecycle states."""
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    BREACHED = "breached"
    CANCELLED = "cancelled"


class TicketEventType(str, Enum):
    """Ticket lifecycle events consumed by the SLA engine."""
    FIRST_RESPONSE = "first_response"
    RESOLUTION = "resolution"
    PAUSE = "pause"
    RESUME = "resume"


class BreachKind(str, Enum):
    """Deadlines an instance can miss."""
    FIRST_RESPONSE = "first_response_breach"
    RESOLUTION = "resolution_breach"


class DurationUnit(str, Enum):
    """Units accepted in SLA targets."""
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"


class UrgencyLevel(str, Enum):
    """Urgency levels inferred from ticket content."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ========== Lists for validation ==========

TERMINAL_SLA_STATUSES = frozenset({SLAStatus.COMPLETED, SLAStatus.CANCELLED})
OPEN_TICKET_STATUSES = ("open", "pending", "in_progress", "waiting")
VALID_PRIORITIES = [p.value for p in Priority]
URGENCY_LEVELS = [u.value for u in UrgencyLevel]
