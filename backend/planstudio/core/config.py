"""Application configuration with validation."""

from enum import Enum
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class ConfigurationError(Exception):
    """Raised when application configuration is invalid for the environment."""
    pass


DEFAULT_SYSTEM_PROMPT = (
    "You are an edit orchestrator that manages image generation and editing for "
    "architectural floor plans and interior/exterior photos. You handle uploads, "
    "transformations, and conversational edits. Every image is stored in the image "
    "delivery service and every result is recorded in a structured version history "
    "for its design session."
)


class Settings(BaseSettings):
    """
    Application settings with validation.

    Uses Pydantic for configuration validation, preventing
    common security issues like wildcard CORS.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment (development/production)"
    )

    # CORS Configuration
    cors_allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Allowed CORS origins (comma-separated)"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite:///./planstudio.db",
        description="Database connection URL"
    )
    # Connection pool tuning (PostgreSQL only; ignored for SQLite).
    db_pool_size: int = Field(
        default=5,
        description="Number of persistent database connections"
    )
    db_max_overflow: int = Field(
        default=10,
        description="Extra connections allowed during traffic bursts"
    )
    db_pool_timeout: int = Field(
        default=30,
        description="Seconds to wait for a connection from the pool before raising"
    )
    db_pool_recycle: int = Field(
        default=1800,
        description="Seconds before a connection is recycled (prevents stale connections)"
    )

    # Generation oracle (Gemini image model)
    gemini_api_key: str = Field(
        default="",
        description="API key for the Gemini generative language API"
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash-image-preview",
        description="Image-capable Gemini model used for edits"
    )
    gemini_api_base: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL of the generative language REST API"
    )
    gemini_timeout_seconds: float = Field(
        default=180.0,
        description="Timeout for a single generation call"
    )
    system_prompt: str = Field(
        default=DEFAULT_SYSTEM_PROMPT,
        description="System instruction prefix sent with every edit"
    )

    # Blob store (Cloudflare Images)
    cf_images_account_id: str = Field(default="", description="Cloudflare account id")
    cf_images_token: str = Field(default="", description="Cloudflare Images API token")
    cf_images_delivery_url: str = Field(
        default="",
        description="Public delivery base URL, e.g. https://imagedelivery.net/<hash>"
    )
    cf_images_api_base: str = Field(
        default="https://api.cloudflare.com/client/v4",
        description="Cloudflare API base URL"
    )
    blob_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout for blob store uploads and downloads"
    )

    # Session history
    # Oldest turns are evicted first once a session exceeds this many entries.
    history_cap: int = Field(
        default=20,
        description="Maximum number of turns replayed to the generation model"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: 'json' for structured, 'text' for human-readable"
    )

    def get_cors_origins(self) -> List[str]:
        """
        Get CORS origins as a list.

        Parses comma-separated string and validates no wildcards.
        """
        origins = [origin.strip() for origin in self.cors_allowed_origins.split(',') if origin.strip()]

        # SECURITY: Prevent wildcard CORS
        if "*" in origins:
            raise ValueError(
                "Wildcard CORS (*) not allowed. "
                "Specify explicit origins in CORS_ALLOWED_ORIGINS"
            )

        return origins

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard Python logging levels."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator('history_cap')
    @classmethod
    def validate_history_cap(cls, v: int) -> int:
        if v < 1:
            raise ValueError("history_cap must be at least 1")
        return v

    def missing_upstream_settings(self) -> List[str]:
        """Names of unset credentials the oracle and blob store need."""
        required = {
            "GEMINI_API_KEY": self.gemini_api_key,
            "CF_IMAGES_ACCOUNT_ID": self.cf_images_account_id,
            "CF_IMAGES_TOKEN": self.cf_images_token,
            "CF_IMAGES_DELIVERY_URL": self.cf_images_delivery_url,
        }
        return [name for name, value in required.items() if not value]

    def validate_production_config(self) -> None:
        """Validate configuration for production environment.

        In production, fails startup if upstream credentials are missing or
        CORS still allows localhost. In development, returns silently and
        main.py logs warnings instead.

        Raises:
            ConfigurationError: If production config is incomplete or insecure.
        """
        errors: list[str] = []

        missing = self.missing_upstream_settings()
        if missing:
            errors.append(f"Upstream credentials are not set: {', '.join(missing)}")

        # Check for localhost CORS origins
        origins = self.get_cors_origins()
        localhost_origins = [o for o in origins if "localhost" in o or "127.0.0.1" in o]
        if localhost_origins:
            errors.append(
                f"CORS allows localhost origins: {localhost_origins}. "
                "Remove localhost origins for production."
            )

        if errors and self.environment == Environment.PRODUCTION:
            raise ConfigurationError(
                "Production configuration is invalid:\n  - " + "\n  - ".join(errors)
            )

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
