"""
SaaS Analytics Pipeline
Centralized Configuration Management

Pydantic settings with environment variable support, validation, and type
safety for the batch transformation pipeline.
"""

from datetime import date
from enum import Enum
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ActivePredicate(str, Enum):
    """Rule deciding which subscriptions count as currently active"""
    OPEN_ENDED = "open_ended"  # end_date is null
    AS_OF = "as_of"  # end_date is null or end_date >= as_of_date
    ALL = "all"  # every subscription


class StorageBackend(str, Enum):
    """Supported table store backends"""
    MEMORY = "memory"
    PARQUET = "parquet"


class PipelineSettings(BaseSettings):
    """Transformation Pipeline Configuration"""

    model_config = SettingsConfigDict(env_prefix="PIPELINE_")

    date_formats: List[str] = Field(
        default=["%Y-%m-%d"],
        description="Accepted calendar-date formats, tried in order",
    )
    active_predicate: ActivePredicate = Field(
        default=ActivePredicate.OPEN_ENDED,
        description="Which subscriptions count toward MRR by plan",
    )
    as_of_date: Optional[date] = Field(
        default=None,
        description="Reference date for the as_of active predicate",
    )
    max_workers: int = Field(default=4, ge=1, description="Concurrent per-entity cleaning workers")

    raw_schema: str = Field(default="raw", description="Schema holding raw tables")
    clean_schema: str = Field(default="clean", description="Schema holding clean tables")
    fact_schema: str = Field(default="fact", description="Schema holding fact and metric tables")

    @field_validator("date_formats")
    @classmethod
    def validate_date_formats(cls, v: List[str]) -> List[str]:
        """At least one date format is required"""
        if not v:
            raise ValueError("date_formats must contain at least one format")
        return v

    @model_validator(mode="after")
    def validate_as_of(self) -> "PipelineSettings":
        """The as_of predicate needs a reference date"""
        if self.active_predicate == ActivePredicate.AS_OF and self.as_of_date is None:
            raise ValueError("as_of_date is required when active_predicate is 'as_of'")
        return self


class StorageSettings(BaseSettings):
    """Table Storage Configuration"""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    backend: StorageBackend = Field(default=StorageBackend.MEMORY, description="Table store backend")
    warehouse_path: str = Field(default="./data/warehouse", description="Parquet warehouse root")
    raw_path: str = Field(default="./data/raw", description="Directory of raw entity CSV files")


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or console")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing pipeline configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="saas-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    version: str = Field(default="1.0.0", description="Application version")

    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
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


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
