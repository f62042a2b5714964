"""Blingo configuration via pydantic-settings."""

import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "secret_key": "insecure-dev-key-change-me",
}


class BlingoSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BLINGO_")

    environment: str = "development"
    secret_key: str = "insecure-dev-key-change-me"

    # Database. Empty means the key store is not configured and the
    # summarizer answers 503 instead of authorizing.
    db_url: str = ""

    # API
    api_title: str = "Blingo"
    api_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = ""
    log_level: str = "INFO"

    # API keys and quota
    key_prefix: str = "blingo-"
    rate_limit: int = 1000
    dev_bypass_auth: bool = False

    # Caller sessions for the key management surface
    session_max_age: int = 8 * 3600  # seconds

    # GitHub
    github_api_url: str = "https://api.github.com"
    github_raw_url: str = "https://raw.githubusercontent.com"
    github_token: str | None = None
    github_timeout: float = 10.0
    github_user_agent: str = "Blingo-GitHub-Summarizer"

    # Summarization
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.2
    openai_timeout: float = 60.0
    readme_preview_chars: int = 500

    @property
    def store_configured(self) -> bool:
        return bool(self.db_url)

    @property
    def completion_configured(self) -> bool:
        return bool(self.openai_api_key)

    def validate_for_production(self) -> None:
        """Raise if insecure defaults or dev switches are used outside development."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development":
            if insecure_fields:
                env_vars = ", ".join(f"BLINGO_{f.upper()}" for f in insecure_fields)
                raise RuntimeError(
                    f"Insecure default values detected in '{self.environment}' environment. "
                    f"Set these environment variables to secure values: {env_vars}. "
                    "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
                )
            if self.dev_bypass_auth:
                raise RuntimeError(
                    f"BLINGO_DEV_BYPASS_AUTH must not be enabled in '{self.environment}' environment"
                )

        if insecure_fields:
            warnings.warn(
                "Using insecure default secret key, set BLINGO_SECRET_KEY for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> BlingoSettings:
    settings = BlingoSettings()
    settings.validate_for_production()
    return settings
