"""Configuration management for alert-relay.

Settings are read from environment variables and an optional ``.env`` file.
"""

from functools import lru_cache

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from alert_relay.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        channels: Comma separated list of monitored channel usernames
        message_limit: Number of recent messages requested per poll
        poll_interval_seconds: Delay between poll ticks
        batch_window_seconds: Debounce window opened by the first item
        batch_extend_seconds: Deadline extension per additional item
        batch_max_window_seconds: Optional cap on a window's total length
        classifier: Classifier variant name (claude, chatgpt, gemini, ...)
        classifier_model: Overrides the variant's default model
        max_history: Maximum conversation entries kept by the classifier
        max_attempts: Classifier retry ceiling
        backoff_base_seconds: Base delay for exponential backoff
        request_timeout_seconds: Per-attempt transport timeout
        preamble_file: Instruction preamble, reloaded on change
        telegram_bot_token: Bot token used to post relay messages
        relay_channel: Channel receiving relay messages
        dry_run: Log relay actions instead of posting them
        gate_url: Optional alert status endpoint used to skip poll ticks
        gate_alert_type: Alert type that marks the gate active
        fetch_attachments: Download photo attachments from sources
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Sources
    channels: str = "odessa_infonews,xydessa_live,freechat_odesa"
    message_limit: int = Field(default=4, ge=1, le=100)
    poll_interval_seconds: float = Field(default=5.0, gt=0)
    fetch_attachments: bool = False

    # Batching
    batch_window_seconds: float = Field(default=30.0, gt=0)
    batch_extend_seconds: float = Field(default=3.0, ge=0)
    batch_max_window_seconds: float | None = None

    # Classifier
    classifier: str = "claude"
    classifier_model: str | None = None
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    deepseek_api_key: str = ""
    gemini_api_key: str = ""
    glm_api_key: str = ""
    openrouter_api_key: str = ""
    max_history: int = Field(default=30, ge=2)
    max_attempts: int = Field(default=3, ge=1)
    backoff_base_seconds: float = Field(default=2.0, ge=0)
    request_timeout_seconds: float = Field(default=60.0, gt=0)
    preamble_file: str = "system_message.txt"

    # Relay
    telegram_bot_token: str = ""
    relay_channel: str = "@odesair"
    dry_run: bool = False

    # Gating
    gate_url: str | None = None
    gate_alert_type: str = "AIR"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("classifier")
    @classmethod
    def _normalize_classifier(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return value

    @field_validator("batch_max_window_seconds")
    @classmethod
    def _check_max_window(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("batch_max_window_seconds must be positive")
        return value

    @property
    def channel_list(self) -> list[str]:
        """Monitored channels, in configuration order, without blanks."""
        return [c.strip().lstrip("@") for c in self.channels.split(",") if c.strip()]

    def api_key_for(self, classifier: str) -> str:
        """Return the API key configured for a classifier variant."""
        keys = {
            "claude": self.anthropic_api_key,
            "chatgpt": self.openai_api_key,
            "deepseek": self.deepseek_api_key,
            "gemini": self.gemini_api_key,
            "glm": self.glm_api_key,
            "glm-coding": self.glm_api_key,
            "openrouter": self.openrouter_api_key,
        }
        return keys.get(classifier, "")


def load_settings(**overrides) -> Settings:
    """Build settings, converting validation failures to ConfigurationError.

    Args:
        **overrides: Values taking precedence over the environment

    Returns:
        Settings: Validated settings

    Raises:
        ConfigurationError: If any value is invalid
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}", source="config") from e


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Application settings

    Example:
        >>> settings = get_settings()
        >>> print(settings.channel_list)
    """
    return load_settings()
