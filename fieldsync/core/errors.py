"""
Error taxonomy shared by the OAuth clients, token store, and integration facade.

Every error carries a terse ``user_message`` that is safe to show to end users;
vendor diagnostics stay on the exception (``detail``) and in server-side logs.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

_RECONNECT_MESSAGE = "Connection failed, please reconnect."


class IntegrationError(Exception):
    """Base class for integration failures."""

    user_message = _RECONNECT_MESSAGE

    def __init__(self, message: str = "", *, detail: Optional[str] = None) -> None:
        super().__init__(message or self.user_message)
        self.detail = detail

    @property
    def error_kind(self) -> str:
        return type(self).__name__


class ConfigurationError(IntegrationError):
    """Raised when a provider is missing client credentials or endpoints."""

    user_message = "This integration is not configured."


class InvalidState(IntegrationError):
    """Raised when an OAuth state value is malformed, expired, reused, or mismatched."""

    user_message = "Please retry connecting."


class TokenExchangeError(IntegrationError):
    """Raised when the vendor rejects an authorization code."""

    def __init__(
        self,
        message: str = "",
        *,
        detail: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.status_code = status_code


class RefreshError(IntegrationError):
    """Raised when a credential cannot be refreshed (e.g. no refresh token)."""


class RefreshRejected(RefreshError):
    """Raised when the vendor rejects the refresh token; re-authorization required."""

    def __init__(
        self,
        message: str = "",
        *,
        detail: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.status_code = status_code


class TransientNetworkError(IntegrationError):
    """Timeouts, connection failures, and 5xx responses after retries are exhausted."""

    user_message = "The provider is temporarily unavailable, please try again."


class VendorAuthError(IntegrationError):
    """The vendor answered 401 to an authenticated API call."""


class VendorRequestError(IntegrationError):
    """The vendor answered an API call with a non-auth client or server error."""

    user_message = "The provider rejected the request."

    def __init__(
        self,
        message: str = "",
        *,
        detail: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.status_code = status_code


class NotConnected(IntegrationError):
    """No credential is stored for the tenant."""


class UnsupportedOperation(IntegrationError):
    """The provider does not expose the requested resource."""

    user_message = "This integration does not support that operation."


class SendFailed(IntegrationError):
    """An outbound message was rejected; never retried automatically."""

    user_message = "The message could not be sent."

    def __init__(
        self,
        message: str = "",
        *,
        payload: Optional[Dict[str, Any]] = None,
        detail: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.payload = payload or {}
        self.status_code = status_code


class WebhookVerificationError(IntegrationError):
    """An inbound webhook failed signature verification."""

    user_message = "Invalid webhook signature."


class NormalizationError(IntegrationError):
    """A vendor record cannot be normalized at all (e.g. it has no vendor id)."""


class NormalizationWarning(UserWarning):
    """Emitted when a vendor record needed fallback values during normalization."""


__all__ = [
    "ConfigurationError",
    "IntegrationError",
    "InvalidState",
    "NormalizationError",
    "NormalizationWarning",
    "NotConnected",
    "RefreshError",
    "RefreshRejected",
    "SendFailed",
    "TokenExchangeError",
    "TransientNetworkError",
    "UnsupportedOperation",
    "VendorAuthError",
    "VendorRequestError",
    "WebhookVerificationError",
]
