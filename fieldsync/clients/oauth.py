"""
Vendor-neutral OAuth 2.0 client.

Drives the authorization-code grant, the refresh grant and token revocation
against whatever endpoints a provider declares. Providers differ only in the
``OAuthProviderConfig`` they build.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Literal, Mapping, Optional, Tuple
from urllib.parse import urlencode

from fieldsync.core.errors import (
    ConfigurationError,
    RefreshError,
    RefreshRejected,
    TokenExchangeError,
    TransientNetworkError,
)
from fieldsync.models.oauth import TenantCredential
from fieldsync.core.ports import HttpTransport
from fieldsync.utils.clock import Clock, utcnow
from fieldsync.utils.http import TransportResponse

logger = logging.getLogger(__name__)

# Statuses a token endpoint uses to say "this grant is dead".
_REJECTED_STATUSES = frozenset({400, 401, 403})


@dataclass(frozen=True)
class OAuthProviderConfig:
    """Client registration and endpoints for one OAuth provider."""

    provider: str
    client_id: Optional[str]
    client_secret: Optional[str] = field(default=None, repr=False)
    redirect_uri: Optional[str] = None
    authorize_url: str = ""
    token_url: str = ""
    revoke_url: Optional[str] = None
    revoke_style: Literal["form", "bearer"] = "form"
    scopes: Tuple[str, ...] = ()
    extra_authorize_params: Mapping[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        missing = [
            name
            for name in ("client_id", "client_secret", "redirect_uri", "authorize_url", "token_url")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                f"OAuth configuration for {self.provider} is missing: {', '.join(missing)}."
            )


class OAuthClient:
    """Build authorization URLs and run token grants for one provider."""

    def __init__(
        self,
        config: OAuthProviderConfig,
        transport: HttpTransport,
        *,
        clock: Clock = utcnow,
    ) -> None:
        config.validate()
        self._config = config
        self._transport = transport
        self._clock = clock

    @property
    def provider(self) -> str:
        return self._config.provider

    def build_authorization_url(self, state: str) -> str:
        """Construct the vendor consent URL."""
        params: Dict[str, str] = {
            "response_type": "code",
            "client_id": self._config.client_id or "",
            "redirect_uri": self._config.redirect_uri or "",
            "scope": " ".join(self._config.scopes),
            "state": state,
        }
        params.update(self._config.extra_authorize_params)
        return f"{self._config.authorize_url}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TenantCredential:
        """Exchange an authorization code for a credential set.

        Authorization codes are single-use, so the request is never retried.
        """
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
            "redirect_uri": self._config.redirect_uri,
        }
        acquired_at = self._clock()
        try:
            response = await self._transport.request(
                "POST",
                self._config.token_url,
                headers={"Accept": "application/json"},
                data=payload,
                retry=False,
            )
        except TransientNetworkError as exc:
            raise TokenExchangeError(
                f"{self.provider} token endpoint unreachable.", detail=exc.detail
            ) from exc

        if not response.ok:
            logger.warning(
                "%s rejected authorization code (HTTP %s): %s",
                self.provider,
                response.status_code,
                response.text,
            )
            raise TokenExchangeError(
                f"{self.provider} rejected the authorization code.",
                detail=response.text,
                status_code=response.status_code,
            )

        token_payload = self._parse_json(response, TokenExchangeError)
        if not token_payload.get("access_token"):
            raise TokenExchangeError(
                f"Incomplete token payload returned from {self.provider}.",
                detail=response.text,
                status_code=response.status_code,
            )
        return self._to_credential(token_payload, acquired_at=acquired_at)

    async def refresh(self, credential: TenantCredential) -> TenantCredential:
        """Run the refresh grant and return the replacement credential set."""
        if not credential.refresh_token:
            raise RefreshError(f"No refresh token stored for {self.provider}.")

        payload = {
            "grant_type": "refresh_token",
            "refresh_token": credential.refresh_token,
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
        }
        acquired_at = self._clock()
        response = await self._transport.request(
            "POST",
            self._config.token_url,
            headers={"Accept": "application/json"},
            data=payload,
        )

        if response.status_code in _REJECTED_STATUSES:
            logger.warning(
                "%s rejected refresh token (HTTP %s): %s",
                self.provider,
                response.status_code,
                response.text,
            )
            raise RefreshRejected(
                f"{self.provider} rejected the refresh token.",
                detail=response.text,
                status_code=response.status_code,
            )
        if response.status_code == 429:
            raise TransientNetworkError(
                f"{self.provider} rate-limited the refresh grant.",
                detail=response.text,
            )
        if not response.ok:
            raise RefreshError(
                f"{self.provider} refresh failed with HTTP {response.status_code}.",
                detail=response.text,
            )

        token_payload = self._parse_json(response, RefreshError)
        if not token_payload.get("access_token"):
            raise RefreshError(
                f"Incomplete refresh payload returned from {self.provider}.",
                detail=response.text,
            )
        refreshed = self._to_credential(token_payload, acquired_at=acquired_at)
        if refreshed.refresh_token is None:
            refreshed = refreshed.model_copy(update={"refresh_token": credential.refresh_token})
        if not refreshed.scope:
            refreshed = refreshed.model_copy(update={"scope": credential.scope})
        return refreshed

    async def revoke(self, credential: TenantCredential) -> bool:
        """Best-effort revocation; returns whether the vendor acknowledged it."""
        if not self._config.revoke_url:
            return False

        try:
            if self._config.revoke_style == "bearer":
                response = await self._transport.request(
                    "POST",
                    self._config.revoke_url,
                    headers=credential.authorization_header,
                    retry=False,
                )
            else:
                response = await self._transport.request(
                    "POST",
                    self._config.revoke_url,
                    data={"token": credential.refresh_token or credential.access_token},
                    retry=False,
                )
        except TransientNetworkError as exc:
            logger.warning("%s token revocation failed: %s", self.provider, exc.detail)
            return False

        if not response.ok:
            logger.warning(
                "%s token revocation returned HTTP %s", self.provider, response.status_code
            )
        return response.ok

    def _to_credential(self, payload: Mapping[str, Any], *, acquired_at: datetime) -> TenantCredential:
        scope = payload.get("scope") or ""
        if isinstance(scope, (list, tuple)):
            scope = " ".join(scope)
        return TenantCredential(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            token_type=str(payload.get("token_type") or "bearer").lower(),
            expires_at=_compute_expiry(payload, acquired_at),
            scope=scope,
        )

    @staticmethod
    def _parse_json(response: TransportResponse, error_cls: type) -> Dict[str, Any]:
        try:
            parsed = response.json()
        except ValueError as exc:
            raise error_cls("Token endpoint returned invalid JSON.", detail=response.text) from exc
        if not isinstance(parsed, dict):
            raise error_cls("Token endpoint returned an unexpected payload.", detail=response.text)
        return parsed


def _compute_expiry(payload: Mapping[str, Any], acquired_at: datetime) -> Optional[datetime]:
    """Absolute ``expiry_date`` (epoch ms) wins; otherwise pin ``expires_in`` to now."""
    expiry_date = payload.get("expiry_date")
    if expiry_date:
        try:
            return datetime.fromtimestamp(int(expiry_date) / 1000, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError):
            logger.warning("Ignoring unparseable expiry_date %r", expiry_date)

    expires_in = payload.get("expires_in")
    if expires_in in (None, ""):
        return None
    try:
        return acquired_at + timedelta(seconds=int(expires_in))
    except (TypeError, ValueError):
        logger.warning("Ignoring unparseable expires_in %r", expires_in)
        return None


__all__ = ["OAuthClient", "OAuthProviderConfig"]
