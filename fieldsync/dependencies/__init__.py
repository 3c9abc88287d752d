"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    build_integration_facade,
    get_app_settings,
    get_credential_provider,
    get_http_transport,
    get_integration_facade,
    get_nonce_registry,
    get_sqlite_store,
    get_state_codec,
    get_token_cipher_service,
)
from .session import HeaderSessionProvider, get_session_provider, get_tenant_id

__all__ = [
    "HeaderSessionProvider",
    "build_integration_facade",
    "get_app_settings",
    "get_credential_provider",
    "get_http_transport",
    "get_integration_facade",
    "get_nonce_registry",
    "get_session_provider",
    "get_sqlite_store",
    "get_state_codec",
    "get_tenant_id",
    "get_token_cipher_service",
]
