"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app and the sync workers share
one configuration surface. Vendor credentials are read here and handed to the
integration facades explicitly; nothing below the dependency layer reads
configuration on its own.
"""

from functools import lru_cache
from typing import Annotated, Literal, Optional

from pydantic import AliasChoices, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _split_csv(value: object) -> object:
    """Support providing tuples of strings as a comma-separated string."""
    if isinstance(value, str):
        return tuple(item.strip() for item in value.split(",") if item.strip())
    if isinstance(value, list):
        return tuple(value)
    return value


class DialpadSettings(BaseSettings):
    """Configuration required for the Dialpad telephony integration."""

    model_config = SettingsConfigDict(
        env_prefix="DIALPAD_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None
    environment: Literal["sandbox", "beta", "production"] = "sandbox"
    scopes: Annotated[tuple[str, ...], NoDecode] = (
        "calls:list",
        "message_content_export",
        "recordings_export",
        "offline_access",
    )
    webhook_secret: Optional[str] = Field(
        None,
        description="Shared secret used to verify webhook signatures from Dialpad.",
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(cls, value: object) -> object:
        return _split_csv(value)


class GmailSettings(BaseSettings):
    """Configuration required for the Gmail mailbox integration."""

    model_config = SettingsConfigDict(
        env_prefix="GMAIL_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None
    scopes: Annotated[tuple[str, ...], NoDecode] = (
        "https://www.googleapis.com/auth/gmail.readonly",
        "https://www.googleapis.com/auth/gmail.send",
        "https://www.googleapis.com/auth/userinfo.email",
        "openid",
    )
    webhook_secret: Optional[str] = None

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(cls, value: object) -> object:
        return _split_csv(value)


class OAuthSettings(BaseSettings):
    """OAuth flow and vendor HTTP configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OAUTH_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    state_ttl_seconds: int = Field(600, description="Maximum age of an OAuth state value.")
    http_timeout_seconds: float = Field(15.0, ge=1.0, le=60.0)
    http_retry_attempts: int = Field(3, ge=1)
    http_backoff_seconds: float = Field(0.5, ge=0.0)


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("TOKEN_ENCRYPTION_SECRET", "token_encryption_secret"),
        description="Secret used to derive the symmetric key for encrypting stored tokens.",
    )
    previous_encryption_secrets: Annotated[tuple[str, ...], NoDecode] = Field(
        (),
        validation_alias=AliasChoices(
            "PREVIOUS_TOKEN_ENCRYPTION_SECRETS", "previous_encryption_secrets"
        ),
        description="Retired secrets still accepted for decryption during key rotation.",
    )
    state_secret: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("OAUTH_STATE_SECRET", "state_secret"),
        description="HMAC key for OAuth state values; falls back to the encryption secret.",
    )

    @field_validator("previous_encryption_secrets", mode="before")
    @classmethod
    def _split_secrets(cls, value: object) -> object:
        return _split_csv(value)


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        env_prefix="FIELDSYNC_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    environment: str = "development"
    log_level: str = "INFO"
    database_path: str = Field("data/fieldsync.sqlite3")
    demo_fallback: bool = Field(
        False,
        description="Serve synthetic records to tenants that have not connected yet.",
    )
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        description="Optional URL for redirecting users back to the front-end.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    dialpad: DialpadSettings = Field(default_factory=DialpadSettings)
    gmail: GmailSettings = Field(default_factory=GmailSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()


__all__ = [
    "AppSettings",
    "DialpadSettings",
    "GmailSettings",
    "OAuthSettings",
    "SecuritySettings",
    "get_settings",
]
