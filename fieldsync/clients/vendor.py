"""
Shared plumbing for vendor API adapters.

An adapter knows one vendor's endpoints and wire shapes. It takes a decrypted
credential per call and never stores tokens itself; token lifecycle belongs to
the integration facade.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from fieldsync.clients.oauth import OAuthProviderConfig
from fieldsync.core.errors import UnsupportedOperation, VendorAuthError, VendorRequestError
from fieldsync.core.ports import HttpTransport
from fieldsync.models.oauth import TenantCredential
from fieldsync.schemas.auth import VendorProfile
from fieldsync.schemas.records import (
    CallFilters,
    MessageFilters,
    ResourceKind,
    SendMessageRequest,
    SendResult,
)
from fieldsync.utils.http import TransportResponse

logger = logging.getLogger(__name__)

Page = Tuple[List[Dict[str, Any]], Optional[str]]


class VendorClient:
    """Base class for vendor adapters."""

    provider: str = ""
    capabilities: FrozenSet[ResourceKind] = frozenset()
    message_kind: ResourceKind = ResourceKind.SMS

    def __init__(self, transport: HttpTransport) -> None:
        self._transport = transport

    @property
    def oauth_config(self) -> OAuthProviderConfig:
        raise NotImplementedError

    def supports(self, kind: ResourceKind) -> bool:
        return kind in self.capabilities

    async def fetch_profile(self, credential: TenantCredential) -> VendorProfile:
        raise NotImplementedError

    async def fetch_calls(
        self, credential: TenantCredential, filters: CallFilters, cursor: Optional[str]
    ) -> Page:
        raise UnsupportedOperation(f"{self.provider} does not expose call records.")

    async def fetch_messages(
        self, credential: TenantCredential, filters: MessageFilters, cursor: Optional[str]
    ) -> Page:
        raise UnsupportedOperation(f"{self.provider} does not expose messages.")

    async def send_message(
        self, credential: TenantCredential, request: SendMessageRequest
    ) -> SendResult:
        raise UnsupportedOperation(f"{self.provider} cannot send messages.")

    async def _get_json(
        self,
        credential: TenantCredential,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        response = await self._transport.request(
            "GET",
            url,
            headers={**credential.authorization_header, "Accept": "application/json"},
            params={key: value for key, value in (params or {}).items() if value is not None},
        )
        self._raise_for_status(response, url)
        try:
            payload = response.json()
        except ValueError as exc:
            raise VendorRequestError(
                f"{self.provider} returned invalid JSON.",
                detail=response.text[:500],
                status_code=response.status_code,
            ) from exc
        if not isinstance(payload, dict):
            raise VendorRequestError(
                f"{self.provider} returned an unexpected payload.",
                detail=response.text[:500],
                status_code=response.status_code,
            )
        return payload

    def _raise_for_status(self, response: TransportResponse, url: str) -> None:
        if response.status_code == 401:
            raise VendorAuthError(f"{self.provider} rejected the access token.", detail=response.text)
        if not response.ok:
            logger.warning(
                "%s request to %s failed (HTTP %s): %s",
                self.provider,
                url.split("?", 1)[0],
                response.status_code,
                response.text[:500],
            )
            raise VendorRequestError(
                f"{self.provider} request failed with HTTP {response.status_code}.",
                detail=response.text,
                status_code=response.status_code,
            )


__all__ = ["Page", "VendorClient"]
