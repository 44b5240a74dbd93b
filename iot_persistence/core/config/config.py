"""
Static configuration for the persistence layer.

Purpose
-------
Settings read from environment variables (``.env`` aware) with defaults and
bounds checking. Values are read once at import; ``Config.load()`` re-reads
them.

Non-Responsibilities
--------------------
- Database connection settings (read from the properties source, see
  ``iot_persistence.core.config.properties``)

Environment Variables
---------------------
- ENVIRONMENT: development / testing / staging / production (default: development)
- LOG_LEVEL: level for ``setup_logging()`` (default: INFO)
- LOG_JSON: force JSON console logs (default: unset, JSON in production)
- LOG_TO_FILE: add the daily rotating JSON log file (default: False)
- LOGS_DIR: directory for log files (default: ./logs)
- DB_PROPERTIES_FILE: database properties source (default: db.properties)
- BACKGROUND_WORKERS: worker tasks for fire-and-forget writes (default: 4)
- BACKGROUND_QUEUE_SIZE: pending job capacity (default: 10000)
- BACKGROUND_SHUTDOWN_TIMEOUT_SECONDS: drain timeout on shutdown (default: 10)
- REPORTING_MINUTE_RETENTION_MINUTES: minute graph retention (default: 360)
- REPORTING_HOURLY_RETENTION_HOURS: hourly graph retention (default: 168)
- REPORTING_CLEANUP_INTERVAL_SECONDS: retention worker period (default: 3600)
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Environment(Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        try:
            return cls(value.lower())
        except ValueError:
            logger.warning(f"Unknown environment '{value}', defaulting to development")
            return cls.DEVELOPMENT


class Config:
    """
    Centralized static configuration.

    >>> Config.DB_PROPERTIES_FILE
    'db.properties'
    """

    ENVIRONMENT: str = "development"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None
    LOG_TO_FILE: bool = False
    LOGS_DIR: Path = Path.cwd() / "logs"

    # Persistence
    DB_PROPERTIES_FILE: str = "db.properties"

    # Background execution
    BACKGROUND_WORKERS: int = 4
    BACKGROUND_QUEUE_SIZE: int = 10_000
    BACKGROUND_SHUTDOWN_TIMEOUT_SECONDS: int = 10

    # Reporting retention
    REPORTING_MINUTE_RETENTION_MINUTES: int = 360
    REPORTING_HOURLY_RETENTION_HOURS: int = 168
    REPORTING_CLEANUP_INTERVAL_SECONDS: int = 3600

    # =========================================================================
    # Parsers
    # =========================================================================

    @staticmethod
    def _safe_int(
        key: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
    ) -> int:
        """
        Parse an integer variable; malformed or out-of-range values warn and
        fall back to ``default``.
        """
        raw_value = os.getenv(key)
        if raw_value is None:
            return default

        try:
            value = int(raw_value)
        except ValueError:
            logger.warning(f"{key}='{raw_value}' is not a valid integer, using default {default}")
            return default

        if min_val is not None and value < min_val:
            logger.warning(f"{key}={value} is below minimum {min_val}, using default {default}")
            return default
        if max_val is not None and value > max_val:
            logger.warning(f"{key}={value} exceeds maximum {max_val}, using default {default}")
            return default
        return value

    @staticmethod
    def _safe_bool(key: str, default: Optional[bool]) -> Optional[bool]:
        """Accepts true/false, yes/no, 1/0, on/off (case-insensitive)."""
        raw_value = os.getenv(key)
        if raw_value is None:
            return default

        normalized = raw_value.strip().lower()
        if normalized in {"true", "yes", "1", "on"}:
            return True
        if normalized in {"false", "no", "0", "off"}:
            return False
        logger.warning(f"{key}='{raw_value}' is not a valid boolean, using default {default}")
        return default

    # =========================================================================
    # Loading
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        """Re-read every setting from the environment."""
        cls.ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

        cls.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        if cls.LOG_LEVEL not in _LOG_LEVELS:
            logger.warning(f"Invalid LOG_LEVEL '{cls.LOG_LEVEL}', using INFO")
            cls.LOG_LEVEL = "INFO"
        cls.LOG_JSON = cls._safe_bool("LOG_JSON", None)
        cls.LOG_TO_FILE = bool(cls._safe_bool("LOG_TO_FILE", False))
        cls.LOGS_DIR = Path(os.getenv("LOGS_DIR", str(Path.cwd() / "logs")))

        cls.DB_PROPERTIES_FILE = os.getenv("DB_PROPERTIES_FILE", "db.properties")

        cls.BACKGROUND_WORKERS = cls._safe_int("BACKGROUND_WORKERS", 4, min_val=1, max_val=64)
        cls.BACKGROUND_QUEUE_SIZE = cls._safe_int("BACKGROUND_QUEUE_SIZE", 10_000, min_val=1)
        cls.BACKGROUND_SHUTDOWN_TIMEOUT_SECONDS = cls._safe_int(
            "BACKGROUND_SHUTDOWN_TIMEOUT_SECONDS", 10, min_val=0, max_val=600
        )

        cls.REPORTING_MINUTE_RETENTION_MINUTES = cls._safe_int(
            "REPORTING_MINUTE_RETENTION_MINUTES", 360, min_val=1
        )
        cls.REPORTING_HOURLY_RETENTION_HOURS = cls._safe_int(
            "REPORTING_HOURLY_RETENTION_HOURS", 168, min_val=1
        )
        cls.REPORTING_CLEANUP_INTERVAL_SECONDS = cls._safe_int(
            "REPORTING_CLEANUP_INTERVAL_SECONDS", 3600, min_val=1
        )

    @classmethod
    def is_production(cls) -> bool:
        return Environment.from_string(cls.ENVIRONMENT) is Environment.PRODUCTION

    @classmethod
    def is_testing(cls) -> bool:
        return Environment.from_string(cls.ENVIRONMENT) is Environment.TESTING

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """Non-sensitive settings, logged at subsystem startup."""
        return {
            "environment": cls.ENVIRONMENT,
            "log_level": cls.LOG_LEVEL,
            "db_properties_file": cls.DB_PROPERTIES_FILE,
            "background_workers": cls.BACKGROUND_WORKERS,
            "background_queue_size": cls.BACKGROUND_QUEUE_SIZE,
            "reporting_minute_retention_minutes": cls.REPORTING_MINUTE_RETENTION_MINUTES,
            "reporting_hourly_retention_hours": cls.REPORTING_HOURLY_RETENTION_HOURS,
        }


Config.load()
