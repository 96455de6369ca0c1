import logging
from typing import Literal

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from errors import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(frozen=True, extra="ignore", env_ignore_empty=True)

    # OpenAI
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_api_url: str = "https://api.openai.com/v1/chat/completions"

    # Bedrock
    bedrock_region: str = "us-east-1"
    bedrock_model_id: str = "openai.gpt-oss-120b-1:0"

    completion_backend: Literal["openai", "bedrock"] = "openai"
    completion_timeout_seconds: float = 20.0
    recommendation_policy: Literal["guarded", "approve_only"] = "guarded"
    corporate_strategy_prompt: str | None = None
    log_level: str = "INFO"

    @field_validator("openai_api_key", "corporate_strategy_prompt", mode="before")
    @classmethod
    def _blank_is_unset(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("completion_backend", "recommendation_policy", mode="before")
    @classmethod
    def _lower(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("log_level", mode="before")
    @classmethod
    def _known_level(cls, v):
        level = str(v).strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {v!r}")
        return level


def load_settings(**overrides) -> Settings:
    try:
        return Settings(**overrides)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]).upper() for err in e.errors() if err.get("loc"))
        raise ConfigurationError(f"Invalid configuration: {fields or e}")


SETTINGS = load_settings()
