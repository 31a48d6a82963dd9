"""Application settings for edge-ingest."""

import os

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from edge_ingest.runtime_config import current_runtime_config


class Settings(BaseSettings):
    """Secrets and upstream endpoints."""

    model_config = SettingsConfigDict(
        env_prefix="EDGE_INGEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    odds_api_key: str = Field(
        default="",
        validation_alias=AliasChoices(
            "ODDS_API_KEY", "THE_ODDS_API_KEY", "EDGE_INGEST_ODDS_API_KEY"
        ),
    )
    odds_api_base_url: str = "https://api.the-odds-api.com/v4"
    odds_api_timeout_s: float = 20.0
    x_bearer_token: str = Field(
        default="",
        validation_alias=AliasChoices(
            "X_BEARER_TOKEN", "TWITTER_BEARER_TOKEN", "EDGE_INGEST_X_BEARER_TOKEN"
        ),
    )
    x_api_base_url: str = "https://api.twitter.com/2"
    x_api_timeout_s: float = 15.0
    retry_max_attempts: int = 4
    retry_base_delay_s: float = 60.0
    retry_max_delay_s: float = 600.0

    @field_validator("x_bearer_token")
    @classmethod
    def clean_bearer(cls, value: str) -> str:
        return cls._clean_token(value)

    @staticmethod
    def _clean_token(raw: str) -> str:
        # Tokens pasted from the developer portal are sometimes URL-encoded.
        return raw.strip().replace("%3D", "=")

    @classmethod
    def from_runtime(cls) -> "Settings":
        """Construct settings from runtime config + direct secret env fallback."""
        runtime = current_runtime_config()

        odds_key = (
            os.environ.get("ODDS_API_KEY", "").strip()
            or os.environ.get("THE_ODDS_API_KEY", "").strip()
            or os.environ.get("EDGE_INGEST_ODDS_API_KEY", "").strip()
        )
        bearer = (
            os.environ.get("X_BEARER_TOKEN", "")
            or os.environ.get("TWITTER_BEARER_TOKEN", "")
            or os.environ.get("EDGE_INGEST_X_BEARER_TOKEN", "")
        )

        secrets: dict[str, str] = {}
        if odds_key:
            secrets["odds_api_key"] = odds_key
        if bearer.strip():
            secrets["x_bearer_token"] = cls._clean_token(bearer)

        return cls(
            **secrets,
            odds_api_base_url=runtime.odds_api_base_url,
            odds_api_timeout_s=runtime.odds_api_timeout_s,
            x_api_base_url=runtime.x_api_base_url,
            x_api_timeout_s=runtime.x_api_timeout_s,
            retry_max_attempts=runtime.retry_max_attempts,
            retry_base_delay_s=runtime.retry_base_delay_s,
            retry_max_delay_s=runtime.retry_max_delay_s,
        )
