"""Configuration management for SMART authorization clients."""

from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from ``SMART_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SMART_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Client registration
    client_id: str | None = Field(
        default=None,
        description="OAuth2 client ID. If unset, a client is registered dynamically "
        "when the server advertises a registration endpoint.",
    )
    client_secret: str | None = Field(
        default=None, description="OAuth2 client secret for confidential clients"
    )

    # Redirect handling
    redirect_host: str = Field(default="localhost", description="Callback server host")
    redirect_port: int = Field(default=8889, description="Callback server port")
    redirect_path: str = Field(default="/callback", description="Callback path")

    # Authorization
    scope: str | None = Field(
        default=None,
        description="Base scope to request. Launch scopes are added per authorization. "
        "Defaults to 'user/*.* openid profile'.",
    )
    title: str = Field(default="SMART", description="Display title for the authorization UI")
    authorization_timeout: float | None = Field(
        default=300.0,
        description="Seconds to wait for the redirect before aborting. 0 disables.",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Path | None = Field(default=None, description="Optional log file path")

    @field_validator("redirect_path")
    @classmethod
    def validate_redirect_path(cls, v: str) -> str:
        """Validate that the callback path is absolute."""
        if not v.startswith("/"):
            raise ValueError("Redirect path must start with /")
        return v

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.redirect_host}:{self.redirect_port}{self.redirect_path}"

    def to_auth_settings(self) -> dict[str, Any]:
        """Build the auth settings mapping used to configure a session.

        Only keys with a value are included, so discovered endpoints and
        defaults are not shadowed by empty entries.
        """
        auth_settings: dict[str, Any] = {
            "redirect_uris": [self.redirect_uri],
            "title": self.title,
        }
        if self.client_id:
            auth_settings["client_id"] = self.client_id
        if self.client_secret:
            auth_settings["client_secret"] = self.client_secret
        if self.scope:
            auth_settings["scope"] = self.scope
        return auth_settings


# Global settings instance
settings = Settings()
