"""Configuration management for the QualityPilot execution engine."""

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SUPPORTED_BROWSERS = ("chromium", "firefox", "webkit")
NAVIGATION_WAIT_STATES = ("load", "domcontentloaded", "networkidle", "commit")


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # OpenAI Configuration (step generation)
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_model: str = Field(
        default="gpt-4o-mini", description="Model used to generate test steps"
    )
    openai_temperature: float = Field(
        default=0.2, ge=0.0, le=2.0, description="Step generation temperature"
    )
    openai_max_retries: int = Field(
        default=3, ge=1, description="Maximum API retry attempts"
    )
    openai_request_timeout_seconds: int = Field(
        default=120,
        ge=10,
        description="Request timeout for OpenAI API calls in seconds",
    )

    # Browser Configuration
    browser_kind: str = Field(
        default="chromium", description="Default browser engine"
    )
    browser_headless: bool = Field(
        default=True, description="Run browser in headless mode"
    )
    browser_timeout: int = Field(
        default=30000, ge=1000, description="Default browser timeout (ms)"
    )
    browser_viewport_width: int = Field(
        default=1280, ge=320, description="Browser viewport width"
    )
    browser_viewport_height: int = Field(
        default=720, ge=240, description="Browser viewport height"
    )

    # Execution Configuration
    step_timeout_ms: int = Field(
        default=60000, ge=1000, description="Upper bound for a single step (ms)"
    )
    strategy_timeout_ms: int = Field(
        default=2000,
        ge=100,
        description="Time each resolution strategy gets to produce a visible match (ms)",
    )
    click_settle_ms: int = Field(
        default=500, ge=0, description="Delay after a click before the next step (ms)"
    )
    default_wait_ms: int = Field(
        default=1000, ge=0, description="Wait duration when a wait step has no value (ms)"
    )
    navigation_wait_until: str = Field(
        default="networkidle", description="Load state awaited by navigate steps"
    )
    scan_page_before_generation: bool = Field(
        default=True,
        description="Navigate and scan the page inventory before generating steps",
    )
    max_concurrent_runs: int = Field(
        default=3, ge=1, description="Runs the scheduler executes at once"
    )

    # Page Inventory Configuration
    inventory_max_per_category: int = Field(
        default=50, ge=1, description="Elements inspected per inventory category"
    )
    resolution_candidates_limit: int = Field(
        default=15,
        ge=0,
        description="Visible candidates listed in a resolution failure message",
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: str = Field(
        default="text",
        description="Log format (json or text)",
    )
    log_file: Optional[str] = Field(
        default=None, description="Log file path"
    )

    # Storage Configuration
    data_dir: Path = Field(
        default=Path("data"), description="Data storage directory"
    )
    screenshots_dir: Path = Field(
        default=Path("data/screenshots"), description="Screenshots directory"
    )
    persist_screenshots: bool = Field(
        default=True, description="Write step screenshots to screenshots_dir"
    )
    record_video: bool = Field(
        default=False, description="Record a video of each run"
    )
    videos_dir: Path = Field(
        default=Path("data/videos"), description="Run video directory"
    )

    @field_validator("log_level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator("log_format")
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v not in ["json", "text"]:
            raise ValueError(f"Invalid log format: {v}")
        return v

    @field_validator("browser_kind")
    def validate_browser_kind(cls, v: str) -> str:
        """Validate browser engine name."""
        normalized = v.strip().lower()
        if normalized not in SUPPORTED_BROWSERS:
            raise ValueError(
                f"Invalid browser kind: {v}. Allowed values: {list(SUPPORTED_BROWSERS)}"
            )
        return normalized

    @field_validator("navigation_wait_until")
    def validate_navigation_wait_until(cls, v: str) -> str:
        if v not in NAVIGATION_WAIT_STATES:
            raise ValueError(f"Invalid navigation wait state: {v}")
        return v

    def create_directories(self) -> None:
        """Create required directories if they don't exist."""
        dirs = [self.data_dir]
        if self.persist_screenshots:
            dirs.append(self.screenshots_dir)
        if self.record_video:
            dirs.append(self.videos_dir)
        for dir_path in dirs:
            dir_path.mkdir(parents=True, exist_ok=True)


class ConfigManager:
    """Key based access to the settings object."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        try:
            return getattr(self.settings, key)
        except AttributeError:
            return default

    def get_required(self, key: str) -> Any:
        """Get required configuration value."""
        try:
            return getattr(self.settings, key)
        except AttributeError:
            raise KeyError(f"Required configuration key not found: {key}")

    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values."""
        return self.settings.model_dump()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    # Load .env file if it exists
    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)

    settings = Settings()
    settings.create_directories()
    return settings


def get_config() -> ConfigManager:
    """Get configuration manager instance."""
    return ConfigManager(get_settings())
