"""Configuration and settings management using pydantic-settings."""
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_prefix="GENQ_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Core service settings
    env: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Log level")

    # Execution engine settings
    engine_base_url: str = Field(
        default="http://localhost:8188",
        description="Base URL of the node-graph execution engine",
    )
    engine_use_api_prefix: bool = Field(
        default=False,
        description="Prefix every engine path with /api",
    )
    engine_timeout_s: float = Field(
        default=300.0,
        description="Read timeout for engine requests in seconds",
    )
    engine_max_retries: int = Field(
        default=2,
        description="Retries for rate-limited, 5xx or timed-out engine requests",
    )
    engine_string_node_refs: bool = Field(
        default=True,
        description="Send link references as [\"<node id>\", index] instead of [<node id>, index]",
    )

    # Polling
    poll_initial_delay_s: float = Field(
        default=5.0,
        description="Delay before the first poll tick after start()",
    )
    poll_interval_s: float = Field(
        default=15.0,
        description="Interval between poll ticks",
    )

    # Artifact retrieval
    artifact_retries: int = Field(
        default=5,
        description="History lookups before giving up on an artifact",
    )
    artifact_retry_delay_s: float = Field(
        default=3.0,
        description="Delay between history lookups",
    )
    output_dir: Path = Field(
        default=Path("output"),
        description="Local directory artifacts are written into",
    )

    @field_validator("engine_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) URL and drop any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("engine_base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("poll_interval_s", "engine_timeout_s")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("engine_max_retries", "artifact_retries", "poll_initial_delay_s", "artifact_retry_delay_s")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @property
    def engine_api_root(self) -> str:
        """Base URL including the optional /api prefix."""
        if self.engine_use_api_prefix:
            return f"{self.engine_base_url}/api"
        return self.engine_base_url


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
