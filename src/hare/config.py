"""Application settings loaded from the environment.

Uses pydantic-settings for validation. Every setting can be given as a
``HARE_*`` environment variable; the DSN also falls back to ``PGMQ_DSN`` so
the dispatcher shares its connection string with other PGMQ tooling.
"""

from pydantic import AliasChoices, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from hare.errors import ConfigurationError


class Settings(BaseSettings):
    """Runtime settings for the dispatcher, fixed once loaded."""

    model_config = SettingsConfigDict(
        env_prefix="HARE_",
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    dsn: str | None = Field(
        default=None,
        validation_alias=AliasChoices("HARE_DSN", "PGMQ_DSN"),
        description="Postgres DSN of the PGMQ database",
    )
    queue_name: str = Field(
        default="deploy",
        validation_alias=AliasChoices("HARE_QUEUE", "HARE_QUEUE_NAME"),
        description="Queue to consume",
    )
    script_root: str = Field(default="/etc/hare/scripts", description="Directory holding handler scripts")
    handler_key: str = Field(default="type", description="Header naming the handler script")
    log_destination: str | None = Field(default=None, description="Log file path, '-' for stdout")
    log_level: str = Field(default="DEBUG", description="Level for the hare loggers")
    max_concurrency: int = Field(default=1, ge=1, description="Handler scripts allowed to run at once")
    visibility_timeout: int = Field(default=300, ge=1, description="Seconds a received message stays hidden")
    poll_seconds: int = Field(default=5, ge=1, description="Length of one queue poll in seconds")
    delete_messages: bool = Field(default=False, description="Delete acknowledged messages instead of archiving")


def get_settings(**overrides) -> Settings:
    """Return the loaded settings, with non-None overrides taking precedence."""
    overrides = {k: v for k, v in overrides.items() if v is not None}
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e
