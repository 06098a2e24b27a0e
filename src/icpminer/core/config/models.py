"""
Pydantic configuration models for ICP Miner.

These models provide type-safe configuration with validation for:
- Application settings
- Finder (person search) API access
- Mining defaults (page budget, targets, pool window)
- Scheduler settings
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class MiningStatus(str, Enum):
    """Lifecycle status of a mining profile."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (MiningStatus.COMPLETED, MiningStatus.FAILED)


class StopReason(str, Enum):
    """Why a scan loop stopped."""

    TARGET_REACHED = "target_reached"
    ALL_TARGETS_PROCESSED = "all_targets_processed"
    NO_MORE_PAGES = "no_more_pages"
    BUDGET_EXHAUSTED = "budget_exhausted"
    FETCH_FAILED = "fetch_failed"

    @property
    def is_success(self) -> bool:
        return self in (
            StopReason.TARGET_REACHED,
            StopReason.ALL_TARGETS_PROCESSED,
            StopReason.NO_MORE_PAGES,
        )


class AuditStatus(str, Enum):
    """Audit event status values."""

    STARTED = "STARTED"
    INFO = "INFO"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ScheduleType(str, Enum):
    """Schedule frequency types."""

    DAILY = "daily"
    WEEKDAY = "weekday"
    HOURLY = "hourly"
    INTERVAL = "interval"
    CRON = "cron"


# =============================================================================
# Finder Configuration
# =============================================================================


class FinderConfig(BaseModel):
    """Person search API settings."""

    base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the API serving the Finder endpoints",
    )
    api_key: str | None = Field(
        default=None,
        description="Bearer token sent with every Finder request",
    )
    search_path: str = Field(
        default="/api/finder/person_role_search",
        description="Path of the person role search endpoint",
    )
    enrich_path: str = Field(
        default="/api/finder/enrich_person",
        description="Endpoint that enriches a person and creates a lead",
    )
    timeout_seconds: float = Field(
        default=60.0,
        ge=1.0,
        le=600.0,
        description="Request timeout in seconds",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum attempts per page request",
    )
    page_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Fixed page size the Finder API pages by",
    )


# =============================================================================
# Mining Configuration
# =============================================================================


class MiningConfig(BaseModel):
    """Defaults for a single mining invocation."""

    max_pages: int = Field(
        default=20,
        ge=1,
        le=1000,
        description="Maximum page fetches per invocation",
    )
    page_size: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Requested page size (advisory, the provider may override)",
    )
    target_matches: int = Field(
        default=40,
        ge=1,
        description="Qualifying leads wanted before a profile is complete",
    )
    pool_limit: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Fetch window when selecting from the pending pool",
    )
    lock_ttl_minutes: int = Field(
        default=60,
        ge=1,
        le=1440,
        description="TTL of the per-profile run lock",
    )


# =============================================================================
# Scheduler Configuration
# =============================================================================


class ScheduleConfig(BaseModel):
    """Configuration for a recurring mining schedule."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Schedule identifier",
    )
    sites: list[str] = Field(
        default_factory=list,
        description="Sites to mine (one pool-mode invocation per site)",
    )
    type: ScheduleType = Field(
        default=ScheduleType.HOURLY,
        description="Schedule frequency type",
    )
    time_of_day: str | None = Field(
        default=None,
        description="Time of day for daily/weekday schedules (HH:MM)",
    )
    interval_minutes: int | None = Field(
        default=None,
        ge=1,
        description="Interval for interval schedules",
    )
    cron: str | None = Field(
        default=None,
        description="Cron expression for cron type",
    )
    timezone: str = Field(
        default="UTC",
        description="Timezone for schedule",
    )
    jitter_minutes: int | None = Field(
        default=None,
        ge=0,
        description="Random jitter window in minutes (scheduler default if unset)",
    )
    max_runtime_minutes: int = Field(
        default=60,
        ge=1,
        le=1440,
        description="Maximum run duration, used as the job lock TTL",
    )

    @field_validator("time_of_day")
    @classmethod
    def validate_time_of_day(cls, v: str | None) -> str | None:
        if v is None:
            return v
        parts = v.split(":")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError("time_of_day must be HH:MM")
        hour, minute = int(parts[0]), int(parts[1])
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise ValueError("time_of_day out of range")
        return v


class SchedulerConfig(BaseModel):
    """Global scheduler settings."""

    enabled: bool = Field(
        default=True,
        description="Master scheduler enable/disable",
    )
    schedules: list[ScheduleConfig] = Field(
        default_factory=list,
        description="Defined schedules",
    )
    default_jitter_minutes: int = Field(
        default=5,
        ge=0,
        description="Default jitter if not specified per-schedule",
    )


# =============================================================================
# Database Configuration
# =============================================================================


class DatabaseConfig(BaseModel):
    """Database connection settings."""

    url: str = Field(
        default="sqlite:///data/icpminer.db",
        description="SQLAlchemy database URL",
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements (debugging)",
    )
    pool_size: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Connection pool size",
    )


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    file: Path | None = Field(
        default=Path("logs/icpminer.log"),
        description="Log file path",
    )
    json_format: bool = Field(
        default=True,
        description="Use JSON format for file logs",
    )
    rich_console: bool = Field(
        default=True,
        description="Use Rich for console output",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Root application configuration.

    This is the main configuration object loaded from app.yaml.
    """

    data_dir: Path = Field(
        default=Path("data"),
        description="Data storage directory",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    finder: FinderConfig = Field(default_factory=FinderConfig)
    mining: MiningConfig = Field(default_factory=MiningConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        if self.logging.file:
            self.logging.file.parent.mkdir(parents=True, exist_ok=True)

    def to_yaml_dict(self) -> dict[str, Any]:
        """Dump to a YAML-friendly dictionary."""
        return self.model_dump(mode="json")
