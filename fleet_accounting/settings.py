"""
Fleet Accounting Settings
Centralized configuration from environment variables

All sensitive data MUST come from environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _get_env(key: str, default: str = "", required: bool = False) -> str:
    """Get environment variable with optional requirement enforcement."""
    value = os.getenv(key, default)
    if required and not value:
        raise ValueError(f"Required environment variable {key} is not set!")
    return value


def _get_env_int(key: str, default: int) -> int:
    """Get integer environment variable."""
    return int(os.getenv(key, str(default)))


def _get_env_float(key: str, default: float) -> float:
    """Get float environment variable."""
    return float(os.getenv(key, str(default)))


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    return os.getenv(key, str(default)).lower() in ("true", "1", "yes")


# =============================================================================
# DATABASE SETTINGS
# =============================================================================
@dataclass
class DatabaseSettings:
    """MySQL database configuration - ALL from environment."""

    host: str = field(default_factory=lambda: _get_env("MYSQL_HOST", "localhost"))
    port: int = field(default_factory=lambda: _get_env_int("MYSQL_PORT", 3306))
    user: str = field(default_factory=lambda: _get_env("MYSQL_USER", "fleet_admin"))
    password: str = field(default_factory=lambda: _get_env("MYSQL_PASSWORD", ""))
    database: str = field(
        default_factory=lambda: _get_env("MYSQL_DATABASE", "fleet_accounting")
    )
    charset: str = "utf8mb4"

    pool_size: int = field(default_factory=lambda: _get_env_int("MYSQL_POOL_SIZE", 10))
    pool_recycle: int = field(
        default_factory=lambda: _get_env_int("MYSQL_POOL_RECYCLE", 3600)
    )

    def get_connection_dict(self) -> Dict:
        """Return connection dictionary for pymysql.

        autocommit is off: the repository drives BEGIN/COMMIT/ROLLBACK so a
        pipeline's writes land together or not at all.
        """
        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "database": self.database,
            "charset": self.charset,
            "autocommit": False,
        }

    def get_sqlalchemy_url(self) -> str:
        return (
            f"mysql+pymysql://{self.user}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}?charset={self.charset}"
        )


# =============================================================================
# ACCOUNTING ENGINE SETTINGS
# =============================================================================
@dataclass
class AccountingSettings:
    """Cost-per-mile basis, rounding and per-truck serialization."""

    # Fallback weekly mile basis for trucks with lifetime mileage but none this week
    standard_weekly_miles: float = field(
        default_factory=lambda: _get_env_float("STANDARD_WEEKLY_MILES", 3000.0)
    )
    display_decimals: int = field(
        default_factory=lambda: _get_env_int("COST_DISPLAY_DECIMALS", 2)
    )

    # Per-truck lock
    lock_timeout_seconds: float = field(
        default_factory=lambda: _get_env_float("RECOMPUTE_LOCK_TIMEOUT", 10.0)
    )
    max_pipeline_retries: int = field(
        default_factory=lambda: _get_env_int("RECOMPUTE_MAX_RETRIES", 3)
    )
    retry_base_delay_seconds: float = field(
        default_factory=lambda: _get_env_float("RECOMPUTE_RETRY_DELAY", 0.1)
    )


# =============================================================================
# DISTANCE RESOLVER SETTINGS
# =============================================================================
@dataclass
class DistanceSettings:
    """City-to-city distance lookup."""

    service_url: Optional[str] = field(
        default_factory=lambda: _get_env("DISTANCE_SERVICE_URL") or None
    )
    timeout_seconds: float = field(
        default_factory=lambda: _get_env_float("DISTANCE_TIMEOUT_SECONDS", 5.0)
    )
    breaker_failure_threshold: int = field(
        default_factory=lambda: _get_env_int("DISTANCE_BREAKER_FAILURES", 5)
    )
    breaker_reset_seconds: float = field(
        default_factory=lambda: _get_env_float("DISTANCE_BREAKER_RESET", 60.0)
    )


# =============================================================================
# LOGGING SETTINGS
# =============================================================================
@dataclass
class LoggingSettings:
    level: str = field(default_factory=lambda: _get_env("LOG_LEVEL", "INFO"))
    log_to_file: bool = field(
        default_factory=lambda: _get_env_bool("LOG_TO_FILE", False)
    )
    log_dir: str = field(default_factory=lambda: _get_env("LOG_DIR", "logs"))


# =============================================================================
# GLOBAL SETTINGS INSTANCE
# =============================================================================
class Settings:
    """Settings container for every configuration group."""

    def __init__(self):
        self.database = DatabaseSettings()
        self.accounting = AccountingSettings()
        self.distance = DistanceSettings()
        self.logging = LoggingSettings()

    def validate(self) -> List[str]:
        """Validate settings and return list of warnings."""
        warnings = []

        if not self.database.password:
            warnings.append("⚠️ MYSQL_PASSWORD not set")

        if self.accounting.standard_weekly_miles <= 0:
            warnings.append("⚠️ STANDARD_WEEKLY_MILES must be positive")

        if not self.distance.service_url:
            warnings.append(
                "ℹ️ DISTANCE_SERVICE_URL not set - using built-in route table"
            )

        return warnings

    def to_dict(self) -> Dict:
        """Export settings as dictionary (for debugging, excludes secrets)."""
        return {
            "database_host": self.database.host,
            "database": self.database.database,
            "standard_weekly_miles": self.accounting.standard_weekly_miles,
            "lock_timeout_seconds": self.accounting.lock_timeout_seconds,
            "distance_service": self.distance.service_url or "table",
            "distance_timeout_seconds": self.distance.timeout_seconds,
        }


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Rebuild settings from the current environment."""
    global _settings
    _settings = Settings()
    return _settings
