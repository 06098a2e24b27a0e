"""Configuration loading and validation."""

from .models import (
    # Enums
    AuditStatus,
    MiningStatus,
    ScheduleType,
    StopReason,
    # Config models
    AppConfig,
    DatabaseConfig,
    FinderConfig,
    LoggingConfig,
    MiningConfig,
    ScheduleConfig,
    SchedulerConfig,
)
from .loader import ConfigError, load_app_config, validate_app_config_file

__all__ = [
    # Enums
    "AuditStatus",
    "MiningStatus",
    "ScheduleType",
    "StopReason",
    # Config models
    "AppConfig",
    "DatabaseConfig",
    "FinderConfig",
    "LoggingConfig",
    "MiningConfig",
    "ScheduleConfig",
    "SchedulerConfig",
    # Loaders
    "ConfigError",
    "load_app_config",
    "validate_app_config_file",
]
