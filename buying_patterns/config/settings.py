"""
Instacart Behavioral Buying Patterns
Centralized Configuration Management

Pydantic settings with environment variable support for the analytics
thresholds, the input/output locations and logging.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalyticsSettings(BaseSettings):
    """Statistical thresholds and presentation options"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    min_sample_size: int = Field(default=30, description="Minimum observations per group, pair or entity")
    precision: int = Field(default=2, description="Decimal places used when presenting results")
    copurchase_both_directions: bool = Field(
        default=False,
        description="Emit each co-purchase pair once per orientation instead of anchoring on the smaller id",
    )

    # Pinned benchmarks (None = recompute from the snapshot on every run)
    order_size_override: Optional[float] = Field(default=None, description="Fixed global average order size")
    repurchase_cycle_override: Optional[float] = Field(default=None, description="Fixed global average repurchase cycle")

    @field_validator("min_sample_size")
    @classmethod
    def validate_min_sample_size(cls, v: int) -> int:
        """A group needs at least one observation"""
        if v < 1:
            raise ValueError("min_sample_size must be >= 1")
        return v

    @field_validator("precision")
    @classmethod
    def validate_precision(cls, v: int) -> int:
        """Negative rounding is not supported"""
        if v < 0:
            raise ValueError("precision must be >= 0")
        return v


class DataSettings(BaseSettings):
    """Snapshot Storage Configuration"""

    model_config = SettingsConfigDict(env_prefix="DATA_")

    input_path: str = Field(default="./data/raw", description="Directory holding the input relations")
    output_path: str = Field(default="./data/results", description="Directory receiving the result sets")
    file_format: str = Field(default="csv", description="File format: csv or parquet")

    @field_validator("file_format")
    @classmethod
    def validate_file_format(cls, v: str) -> str:
        """Validate file format value"""
        allowed = ["csv", "parquet"]
        if v.lower() not in allowed:
            raise ValueError(f"File format must be one of: {allowed}")
        return v.lower()


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


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

    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")

    # Subsystem configurations
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    data: DataSettings = Field(default_factory=DataSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
