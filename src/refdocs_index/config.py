"""Configuration for indexing and retrieval."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Global settings instance
_settings: "Settings | None" = None


class Settings(BaseSettings):
    """Runtime settings, overridable through ``REFDOCS_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="REFDOCS_",
        env_file=".env",
        extra="ignore",
    )

    # Ranking
    heading_boost: float = Field(default=2.0, ge=0.0)
    stem_tokens: bool = False

    # Building
    build_workers: int = Field(default=4, ge=1)
    file_patterns: list[str] = Field(default_factory=lambda: ["*.md", "*.markdown", "*.rst", "*.rest"])

    # Retrieval
    default_budget: int = Field(default=2000, ge=0)
    ready_timeout: float | None = 30.0

    log_level: str = "INFO"


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings | None) -> None:
    """Replace the global settings instance; None reloads from the environment."""
    global _settings
    _settings = settings
