"""
Financial Reporting & Insight Engine
Centralized Configuration Management

Configuration is loaded with Pydantic settings from environment variables
(and an optional ``.env`` file), validated and typed.
"""

from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Read-side database configuration"""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    url: str = Field(
        default="sqlite+aiosqlite:///./finance.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(default=False, description="Echo SQL queries")


class ReportingSettings(BaseSettings):
    """Reporting and insight engine configuration"""

    model_config = SettingsConfigDict(env_prefix="REPORTING_")

    timezone: str = Field(default="Asia/Taipei", description="Reference time zone for day and month boundaries")
    default_range: str = Field(default="month", description="Preset used when no range is requested")
    top_products_limit: int = Field(default=10, ge=1, description="Length of the top-product ranking")
    unknown_product_label: str = Field(default="Unknown", description="Label for sales without model or name")
    default_expense_category: str = Field(default="其他", description="Label for expenses without category")

    # Previous-period comparison for preset ranges
    preset_previous_revenue_ratio: float = Field(
        default=0.9,
        description="Assumed previous/current revenue ratio when no previous window exists",
    )
    compare_presets_with_previous_window: bool = Field(
        default=False,
        description="Compute a genuine previous window for preset ranges",
    )

    audit_records: bool = Field(default=True, description="Run record audits before aggregation")
    low_stock_threshold: int = Field(default=10, ge=0, description="Stock level considered low")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown IANA zone names at startup"""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown time zone: {v}") from e
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        """Reference time zone object"""
        return ZoneInfo(self.timezone)


class MonitoringSettings(BaseSettings):
    """Logging configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE", description="Log file path")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="finance-insights", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    reporting: ReportingSettings = Field(default_factory=ReportingSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
