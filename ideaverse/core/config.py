"""
Application settings management.

Settings are loaded from environment variables with .env file support.
All configuration is validated using Pydantic.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SUPPORTED_LOCALES = ("en-US", "zh-CN")


class Settings(BaseSettings):
    """
    Application settings loaded from environment.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ==========================================================================
    # Paths
    # ==========================================================================

    config_dir: Path = Field(
        default=Path(__file__).resolve().parent.parent.parent / "config",
        description="Directory containing thinking model and prompt YAML files",
    )
    data_dir: Path = Field(
        default=Path("data"), description="Directory for database and other data files"
    )

    # ==========================================================================
    # Database
    # ==========================================================================

    database_path: Path = Field(
        default=Path("data/ideaverse.db"), description="Path to SQLite database file"
    )

    # ==========================================================================
    # LLM Configuration
    # ==========================================================================
    #
    # Any OpenAI-compatible chat-completions endpoint works. Defaults target
    # DeepSeek; point LLM_BASE_URL elsewhere to switch providers.

    llm_api_key: Optional[str] = Field(
        default=None, description="API key for the chat-completions endpoint"
    )
    llm_base_url: str = Field(
        default="https://api.deepseek.com/v1",
        description="Base URL of the OpenAI-compatible API",
    )
    llm_model: str = Field(default="deepseek-chat", description="Model identifier")
    llm_temperature: float = Field(
        default=0.7, ge=0.0, le=2.0, description="Default sampling temperature"
    )
    llm_timeout: float = Field(
        default=300.0,
        gt=0,
        description="Transport timeout in seconds for a single streamed request",
    )

    # ==========================================================================
    # Prompts
    # ==========================================================================

    default_locale: str = Field(
        default="en-US", description="Locale used when none is requested"
    )
    prompt_overrides_path: Optional[Path] = Field(
        default=None,
        description="Optional YAML file where customised prompts are persisted",
    )

    # ==========================================================================
    # Logging
    # ==========================================================================

    debug: bool = Field(default=False, description="Enable debug mode")
    log_dir: Path = Field(default=Path("logs"), description="Directory for log files")
    log_sessions_to_keep: int = Field(
        default=5, ge=1, le=100, description="Number of log files retained"
    )

    @field_validator("default_locale")
    @classmethod
    def validate_locale(cls, v: str) -> str:
        if v not in SUPPORTED_LOCALES:
            raise ValueError(
                f"Unsupported locale '{v}'. Supported: {', '.join(SUPPORTED_LOCALES)}"
            )
        return v

    def has_api_key(self) -> bool:
        """True when an API key is configured."""
        return bool(self.llm_api_key)


# Global settings instance
settings = Settings()
