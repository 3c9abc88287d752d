"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache
from http import HTTPStatus
from typing import Dict, Type

from fastapi import Depends, HTTPException

from fieldsync.clients import (
    DialpadClient,
    GmailClient,
    NonceRegistry,
    SQLiteStore,
    StateCodec,
    VendorClient,
)
from fieldsync.core.config import AppSettings, get_settings
from fieldsync.core.errors import ConfigurationError
from fieldsync.core.ports import DelegatedCredentialProvider
from fieldsync.services import IntegrationFacade, TokenCipherService
from fieldsync.utils.http import HttpxTransport, RetryConfig

PROVIDERS: Dict[str, Type[VendorClient]] = {
    DialpadClient.provider: DialpadClient,
    GmailClient.provider: GmailClient,
}


@lru_cache()
def get_app_settings() -> AppSettings:
    """Settings shared by the client factories and the routes."""
    return get_settings()


@lru_cache()
def get_http_transport() -> HttpxTransport:
    """Provide the shared vendor HTTP transport."""
    settings = get_app_settings()
    return HttpxTransport(
        timeout_seconds=settings.oauth.http_timeout_seconds,
        retry_config=RetryConfig(
            attempts=settings.oauth.http_retry_attempts,
            backoff_seconds=settings.oauth.http_backoff_seconds,
        ),
    )


@lru_cache()
def get_sqlite_store() -> SQLiteStore:
    """Provide shared SQLite repository."""
    settings = get_app_settings()
    return SQLiteStore(settings.database_path)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    security = get_app_settings().security
    if not security.token_encryption_secret:
        raise ConfigurationError("TOKEN_ENCRYPTION_SECRET must be set to store vendor tokens.")
    return TokenCipherService(
        secret=security.token_encryption_secret,
        previous_secrets=security.previous_encryption_secrets,
    )


@lru_cache()
def get_state_codec() -> StateCodec:
    """Provide the OAuth state codec, keyed by the state secret or the encryption secret."""
    settings = get_app_settings()
    secret = settings.security.state_secret or settings.security.token_encryption_secret
    return StateCodec(secret or "", max_age_seconds=settings.oauth.state_ttl_seconds)


@lru_cache()
def get_nonce_registry() -> NonceRegistry:
    """Provide the process-wide registry of consumed state nonces."""
    return NonceRegistry(ttl=get_state_codec().max_age)


def _build_vendor(provider: str) -> VendorClient:
    settings = get_app_settings()
    transport = get_http_transport()
    if provider == DialpadClient.provider:
        return DialpadClient(settings.dialpad, transport)
    return GmailClient(settings.gmail, transport)


@lru_cache(maxsize=None)
def build_integration_facade(provider: str) -> IntegrationFacade:
    """Create the singleton facade for ``provider``; raises ``ConfigurationError`` if unconfigured."""
    if provider not in PROVIDERS:
        raise KeyError(provider)
    settings = get_app_settings()
    vendor_settings = settings.dialpad if provider == DialpadClient.provider else settings.gmail
    return IntegrationFacade(
        vendor=_build_vendor(provider),
        transport=get_http_transport(),
        repository=get_sqlite_store(),
        cipher=get_token_cipher_service(),
        state_codec=get_state_codec(),
        nonce_registry=get_nonce_registry(),
        webhook_secret=vendor_settings.webhook_secret,
        demo_fallback=settings.demo_fallback,
    )


def get_integration_facade(provider: str) -> IntegrationFacade:
    """FastAPI dependency resolving the ``{provider}`` path parameter to its facade."""
    try:
        return build_integration_facade(provider)
    except KeyError as exc:
        raise HTTPException(
            status_code=HTTPStatus.NOT_FOUND,
            detail=f"Unknown integration provider '{provider}'.",
        ) from exc
    except ConfigurationError as exc:
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail={"error_kind": exc.error_kind, "message": exc.user_message},
        ) from exc


def get_credential_provider(
    facade: IntegrationFacade = Depends(get_integration_facade),
) -> DelegatedCredentialProvider:
    """Expose only the delegated vendor-credential side of the facade."""
    return facade


__all__ = [
    "PROVIDERS",
    "build_integration_facade",
    "get_app_settings",
    "get_credential_provider",
    "get_http_transport",
    "get_integration_facade",
    "get_nonce_registry",
    "get_sqlite_store",
    "get_state_codec",
    "get_token_cipher_service",
]
