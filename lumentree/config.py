"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LumentreeSettings(BaseSettings):
    """Upstream Lumentree API configuration."""

    base_url: str = Field(default="http://lesvr.suntcn.com", alias="LUMENTREE_BASE_URL")
    web_url: str = Field(default="https://lumentree.net", alias="LUMENTREE_WEB_URL")
    timeout: float = Field(default=10.0, alias="LUMENTREE_TIMEOUT", gt=0, le=120)
    monthly_timeout: float = Field(
        default=30.0, alias="LUMENTREE_MONTHLY_TIMEOUT", gt=0, le=120
    )
    soc_timeout: float = Field(default=15.0, alias="LUMENTREE_SOC_TIMEOUT", gt=0, le=120)
    token_ttl: int = Field(default=3600, alias="LUMENTREE_TOKEN_TTL", ge=1)
    app_version: str = Field(default="1.6.3", alias="LUMENTREE_APP_VERSION")
    realtime_path: str = Field(
        default="/api/realtime/{device_id}", alias="LUMENTREE_REALTIME_PATH"
    )
    cells_path: str = Field(default="/api/cells/{device_id}", alias="LUMENTREE_CELLS_PATH")

    model_config = SettingsConfigDict(case_sensitive=False)

    @field_validator("realtime_path", "cells_path")
    @classmethod
    def validate_device_placeholder(cls, v: str) -> str:
        """Paths must contain the {device_id} placeholder."""
        if "{device_id}" not in v:
            raise ValueError(f"Path must contain '{{device_id}}': {v}")
        return v


class RealtimeSettings(BaseSettings):
    """Real-time push configuration."""

    enabled: bool = Field(default=True, alias="REALTIME_ENABLED")
    interval: int = Field(default=5, alias="REALTIME_INTERVAL", ge=1, le=3600)
    cell_interval: int = Field(default=30, alias="CELL_INTERVAL", ge=1, le=3600)
    soc_interval: int = Field(default=300, alias="SOC_INTERVAL", ge=1, le=86400)
    send_timeout: float = Field(default=5.0, alias="HUB_SEND_TIMEOUT", gt=0, le=60)

    model_config = SettingsConfigDict(case_sensitive=False)


class Settings(BaseSettings):
    """Main application settings."""

    app_name: str = Field(default="lumentree-gateway", alias="APP_NAME")
    app_env: str = Field(default="production", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: str = Field(default="", alias="LOG_FILE")
    timezone: str = Field(default="Asia/Ho_Chi_Minh", alias="TIMEZONE")
    allowed_origins: str = Field(default="*", alias="ALLOWED_ORIGINS")
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    summary_concurrency: int = Field(default=4, alias="SUMMARY_CONCURRENCY", ge=1, le=32)
    summary_max_days: int = Field(default=366, alias="SUMMARY_MAX_DAYS", ge=1)
    debug_probe_device_id: str = Field(
        default="P250801055", alias="DEBUG_PROBE_DEVICE_ID"
    )

    lumentree: LumentreeSettings = Field(default_factory=LumentreeSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @property
    def cors_origins(self) -> list[str]:
        """Allowed CORS origins as a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
