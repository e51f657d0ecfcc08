"""Process configuration, read once from the environment at startup.

Every variable carries the PROFILE_ prefix, except the model API key which
also falls back to OPENAI_API_KEY. Secrets are held as SecretStr so they
never show up in repr() or log output.
"""
from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import InvalidKey

DEFAULT_DATABASE_URL = "sqlite:///profiles.db"
DEFAULT_SESSION_ID = "default-session"


class Settings(BaseSettings):
    """Immutable process-wide settings."""

    model_config = SettingsConfigDict(
        env_prefix="PROFILE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    encryption_key: SecretStr = SecretStr("")
    database_url: str = DEFAULT_DATABASE_URL
    llm_api_key: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("PROFILE_LLM_API_KEY", "OPENAI_API_KEY"),
    )
    llm_model: str = "gpt-4o"
    llm_base_url: str | None = None
    session_id: str = DEFAULT_SESSION_ID

    @property
    def extraction_enabled(self) -> bool:
        return bool(self.llm_api_key.get_secret_value())


def load_settings(**overrides) -> Settings:
    """Build Settings from the environment, with optional explicit overrides.

    A missing PROFILE_ENCRYPTION_KEY is a fatal startup condition.
    """
    settings = Settings(**overrides)
    if not settings.encryption_key.get_secret_value():
        raise InvalidKey("PROFILE_ENCRYPTION_KEY environment variable is required")
    return settings
