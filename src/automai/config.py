"""Application configuration via environment variables with Pydantic validation.

All configuration is loaded from environment variables (with .env file support).
The app fails loudly at startup if a value is invalid, including a default
Evolution API URL that would not pass the SSRF guard.
"""

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from automai.utils.url_safety import UnsafeUrlError, validate_base_url

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_LOG_FORMATS = ("json", "console")


class Settings(BaseSettings):
    """AutomAI gateway settings. All values sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Evolution API (tenant WhatsApp gateways)
    evolution_api_default_url: str = "https://api.evolution-api.com"
    evolution_allow_http: bool = False
    evolution_resolve_dns: bool = False

    # HTTP client
    httpx_timeout_seconds: float = 10.0

    # API server
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    # CORS
    cors_allowed_origins: str = "http://localhost:3000"

    # Request limits
    max_request_body_bytes: int = 65_536

    # Rate limiting on routes that call tenant gateways
    rate_limit_enabled: bool = True

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("log_level")
    @classmethod
    def log_level_known(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}")
        return level

    @field_validator("log_format")
    @classmethod
    def log_format_known(cls, v: str) -> str:
        fmt = v.strip().lower()
        if fmt not in _LOG_FORMATS:
            raise ValueError("LOG_FORMAT must be 'json' or 'console'")
        return fmt

    @field_validator("httpx_timeout_seconds")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("HTTPX_TIMEOUT_SECONDS must be positive")
        return v

    @model_validator(mode="after")
    def default_url_is_safe(self) -> "Settings":
        try:
            self.evolution_api_default_url = validate_base_url(
                self.evolution_api_default_url,
                allow_http=self.evolution_allow_http,
            )
        except UnsafeUrlError as exc:
            raise ValueError(f"EVOLUTION_API_DEFAULT_URL rejected: {exc.message}") from exc
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list, dropping wildcards."""
        import logging

        origins = [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]
        validated: list[str] = []
        for origin in origins:
            if origin == "*":
                logging.getLogger(__name__).warning(
                    "CORS origin '*' is not allowed with allow_credentials=True, skipping"
                )
                continue
            validated.append(origin)
        return validated


def get_settings() -> Settings:
    """Create and return a validated Settings instance.

    Raises ValidationError with clear messages if an env var is invalid.
    """
    return Settings()
