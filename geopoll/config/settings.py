"""
GeoPoll Configuration System
============================

Configuration management with environment variables and Pydantic models.
Environment variables override Field defaults with clear precedence.

SMTP settings are kept apart from the main settings object: they are only
needed on the notification path, so their absence must not stop polling.
"""

from pathlib import Path
from typing import Optional
from enum import Enum

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class RetryStrategy(str, Enum):
    """Delay strategies between failed poll attempts."""
    FIXED_DELAY = "fixed_delay"
    LINEAR_BACKOFF = "linear"
    EXPONENTIAL_BACKOFF = "exponential"
    JITTERED_EXPONENTIAL = "jittered"
    FIBONACCI = "fibonacci"


class PollingSettings(BaseModel):
    """Poll job, pagination and retry configuration."""
    max_page_number: int = Field(default=10, ge=1, le=100, description="Highest page a pagination chain may fetch")
    max_attempts: int = Field(default=5, ge=1, le=25, description="Total attempts per poll job before exhaustion")
    next_page_header: str = Field(default="Next-Page", min_length=1, description="Response header carrying the next page URL")
    request_timeout: int = Field(default=30, ge=1, le=300, description="HTTP request timeout in seconds")
    worker_count: int = Field(default=5, ge=1, le=64, description="Fixed size of the job worker pool")
    retry_strategy: RetryStrategy = Field(default=RetryStrategy.EXPONENTIAL_BACKOFF, description="Backoff strategy between attempts")
    retry_base_delay: float = Field(default=15.0, ge=0.0, description="Base retry delay in seconds")
    retry_max_delay: float = Field(default=3600.0, ge=0.0, description="Maximum retry delay in seconds")
    retry_jitter: bool = Field(default=True, description="Randomize retry delays by up to 25%")
    user_agent: str = Field(default="GeoPoll/1.0", description="User-Agent header for publisher requests")

    @field_validator('next_page_header')
    @classmethod
    def validate_header_name(cls, v):
        """Header names must not carry surrounding whitespace."""
        v = v.strip()
        if not v:
            raise ValueError("next_page_header cannot be blank")
        return v


class DatabaseSettings(BaseModel):
    """Database configuration."""
    path: str = Field(default="data/geopoll.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/geopoll.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class GeoPollSettings(BaseSettings):
    """Main application settings."""

    polling: PollingSettings = Field(default_factory=PollingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="GeoPoll", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        env_prefix="GEOPOLL_",
        extra="ignore",
    )

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        try:
            db_path = Path(self.database.path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if self.polling.retry_max_delay < self.polling.retry_base_delay:
            errors.append("polling.retry_max_delay must be >= polling.retry_base_delay")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


class SmtpSettings(BaseSettings):
    """Outbound mail transport settings, read from SMTP_* variables.

    Every connection field is required; there is no sensible default
    mail server.
    """
    from_address: str = Field(..., description="Sender address for notifications")
    address: str = Field(..., description="SMTP server host")
    port: int = Field(..., ge=1, le=65535, description="SMTP server port")
    user_name: str = Field(..., description="SMTP login")
    password: str = Field(..., description="SMTP password")
    domain: str = Field(..., description="HELO/EHLO domain")
    enable_starttls_auto: bool = Field(default=True, description="Upgrade with STARTTLS when offered")
    timeout: float = Field(default=30.0, gt=0, description="SMTP socket timeout in seconds")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="SMTP_",
        extra="ignore",
    )


def load_settings() -> GeoPollSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = GeoPollSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except ValidationError as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        ) from e


def load_smtp_settings() -> SmtpSettings:
    """Load SMTP settings at notification time.

    Raises:
        ConfigurationError: If any required SMTP_* variable is missing or invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        return SmtpSettings()
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise ConfigurationError(
            f"SMTP configuration incomplete: {', '.join(missing)}",
            config_key="SMTP",
            error_code=ErrorCode.NOTIFICATION_CONFIG_MISSING,
        ) from e


# Global settings instance
_settings: Optional[GeoPollSettings] = None


def get_settings(reload: bool = False) -> GeoPollSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
