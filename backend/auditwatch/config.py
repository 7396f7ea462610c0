"""
AuditWatch Application Configuration
Environment-driven settings for the scan orchestration engine
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .version import __version__

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "frameworks.yaml"


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="AUDITWATCH_",
        extra="ignore",
    )

    # Application
    app_name: str = "AuditWatch"
    app_version: str = __version__
    debug: bool = False

    # Logging
    log_level: str = "INFO"

    # Framework catalog
    catalog_path: Path = Field(
        default=DEFAULT_CATALOG_PATH,
        description="YAML file holding the compliance framework catalog",
    )

    # Agent liveness
    agent_heartbeat_timeout_seconds: float = Field(
        default=60.0,
        description="Agents without a heartbeat for this long are marked offline",
    )
    liveness_sweep_interval_seconds: float = Field(default=15.0)
    agent_request_timeout_seconds: float = Field(
        default=30.0,
        description="Upper bound for a single engine -> agent transport call",
    )

    # Orchestration
    max_concurrent_units: int = Field(
        default=32,
        description="Maximum execution units running at once within one scan",
    )

    # Scheduler
    scheduler_enabled: bool = True
    scheduler_poll_interval_seconds: float = Field(default=30.0)

    # Alerting
    alert_threshold: int = Field(
        default=70,
        description="Alert when a scan's compliance score falls below this value",
    )
    alert_webhook_url: Optional[str] = None
    alert_webhook_secret: Optional[str] = None

    @field_validator("alert_threshold")
    @classmethod
    def threshold_must_be_percentage(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError("Alert threshold must be between 0 and 100")
        return v

    @field_validator(
        "agent_heartbeat_timeout_seconds",
        "liveness_sweep_interval_seconds",
        "agent_request_timeout_seconds",
        "scheduler_poll_interval_seconds",
    )
    @classmethod
    def intervals_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Intervals and timeouts must be positive")
        return v

    @field_validator("max_concurrent_units")
    @classmethod
    def concurrency_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_concurrent_units must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings"""
    return Settings()
