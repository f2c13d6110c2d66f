"""
Configuration module for the LabPortal web application.
Uses Pydantic BaseSettings for validation - app fails fast if required config is missing.
"""
import logging
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings with validation.
    Required fields will cause the app to fail fast if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Supabase Configuration
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_anon_key: str = Field(..., description="Public (anon) API key used for user-scoped calls")
    supabase_service_role_key: str = Field(
        default="",
        description="Service role key, only used by the invite-user function",
    )

    # Web Configuration
    labportal_host: str = Field(default="0.0.0.0", description="Server host")
    labportal_port: int = Field(default=8000, description="Server port")
    labportal_reload: bool = Field(default=False, description="Enable hot reload")
    labportal_site_url: str = Field(
        default="http://localhost:8000",
        description="Public base URL, used to build password reset links",
    )

    # Session Configuration
    labportal_secret_key: str = Field(
        ...,  # Required - cookies cannot be signed without it
        description="Secret used to sign the session cookie",
        min_length=32,
    )
    labportal_session_cookie: str = Field(default="labportal-auth-token", description="Session cookie name")
    labportal_session_cache_ttl: float = Field(
        default=2.0,
        gt=0,
        description="Seconds a verified session is reused before asking the provider again",
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Root log level")
    log_format: Literal["json", "text"] = Field(default="json", description="json for structured output, text for development")

    # Provider Client Configuration
    labportal_http_timeout: float = Field(default=10.0, description="Provider request timeout in seconds")

    # Avatar Configuration
    labportal_avatar_bucket: str = Field(default="avatars", description="Storage bucket for avatars")
    labportal_avatar_max_size: int = Field(default=5 * 1024 * 1024, description="Max avatar size in bytes (5MB)")

    @model_validator(mode="after")
    def validate_provider(self) -> "Settings":
        """Normalize the provider URL and warn about optional secrets."""
        self.supabase_url = self.supabase_url.rstrip("/")
        self.labportal_site_url = self.labportal_site_url.rstrip("/")

        if not self.supabase_service_role_key:
            logger.warning(
                "SUPABASE_SERVICE_ROLE_KEY not set - the invite-user function will reply with a configuration error"
            )
        return self

    @property
    def reset_password_url(self) -> str:
        """Where the provider's recovery email sends the user."""
        return f"{self.labportal_site_url}/reset-password"


# Create global settings instance - fails fast if required config is missing
settings = Settings()

API_HOST = settings.labportal_host
API_PORT = settings.labportal_port
API_RELOAD = settings.labportal_reload

SECRET_KEY = settings.labportal_secret_key
SESSION_COOKIE = settings.labportal_session_cookie
