"""
Dialpad telephony adapter: OAuth endpoints, call logs, SMS listing and sending.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fieldsync.clients.oauth import OAuthProviderConfig
from fieldsync.clients.vendor import Page, VendorClient
from fieldsync.core.config import DialpadSettings
from fieldsync.core.errors import SendFailed, TransientNetworkError, VendorAuthError
from fieldsync.core.ports import HttpTransport
from fieldsync.models.oauth import TenantCredential
from fieldsync.schemas.auth import VendorProfile
from fieldsync.schemas.records import (
    UNKNOWN,
    CallFilters,
    MessageFilters,
    ResourceKind,
    SendMessageRequest,
    SendResult,
)
from fieldsync.utils.redaction import redact_payload

logger = logging.getLogger(__name__)

BASE_URLS = {
    "sandbox": "https://sandbox.dialpad.com",
    "beta": "https://dialpadbeta.com",
    "production": "https://dialpad.com",
}


class DialpadClient(VendorClient):
    """Talk to the Dialpad v2 API on behalf of one connected tenant at a time."""

    provider = "dialpad"
    capabilities = frozenset({ResourceKind.CALL, ResourceKind.SMS})
    message_kind = ResourceKind.SMS

    def __init__(self, settings: DialpadSettings, transport: HttpTransport) -> None:
        super().__init__(transport)
        self._settings = settings
        self._base_url = BASE_URLS[settings.environment]

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def oauth_config(self) -> OAuthProviderConfig:
        return OAuthProviderConfig(
            provider=self.provider,
            client_id=self._settings.client_id,
            client_secret=self._settings.client_secret,
            redirect_uri=self._settings.redirect_uri,
            authorize_url=f"{self._base_url}/oauth2/authorize",
            token_url=f"{self._base_url}/oauth2/token",
            revoke_url=f"{self._base_url}/oauth2/deauthorize",
            revoke_style="bearer",
            scopes=tuple(self._settings.scopes),
        )

    async def fetch_profile(self, credential: TenantCredential) -> VendorProfile:
        payload = await self._get_json(credential, f"{self._base_url}/api/v2/users/me")
        emails = payload.get("emails") or []
        full_name = " ".join(
            part for part in (payload.get("first_name"), payload.get("last_name")) if part
        )
        return VendorProfile(
            id=str(payload.get("id") or UNKNOWN),
            email=str(emails[0]) if emails else str(payload.get("email") or UNKNOWN),
            display_name=payload.get("display_name") or full_name or UNKNOWN,
            raw=payload,
        )

    async def fetch_calls(
        self, credential: TenantCredential, filters: CallFilters, cursor: Optional[str]
    ) -> Page:
        params: Dict[str, Any] = {
            "user_id": filters.user_id,
            "department_id": filters.department_id,
            "direction": filters.direction.value if filters.direction else None,
            "status": filters.status,
            "start_date": filters.start_date,
            "end_date": filters.end_date,
            "limit": filters.limit,
            "cursor": cursor,
        }
        payload = await self._get_json(credential, f"{self._base_url}/api/v2/calls", params=params)
        return list(payload.get("items") or []), payload.get("cursor") or None

    async def fetch_messages(
        self, credential: TenantCredential, filters: MessageFilters, cursor: Optional[str]
    ) -> Page:
        params: Dict[str, Any] = {
            "user_id": filters.user_id,
            "phone_number": filters.phone_number,
            "start_date": filters.start_date,
            "end_date": filters.end_date,
            "limit": filters.limit,
            "cursor": cursor,
        }
        payload = await self._get_json(credential, f"{self._base_url}/api/v2/sms", params=params)
        return list(payload.get("items") or []), payload.get("cursor") or None

    async def send_message(
        self, credential: TenantCredential, request: SendMessageRequest
    ) -> SendResult:
        body: Dict[str, Any] = {"to": request.to, "text": request.body}
        if request.sender:
            body["from"] = request.sender

        try:
            response = await self._transport.request(
                "POST",
                f"{self._base_url}/api/v2/sms",
                headers={**credential.authorization_header, "Content-Type": "application/json"},
                json=body,
                retry=False,
            )
        except TransientNetworkError as exc:
            raise SendFailed(
                "Dialpad could not be reached to send the SMS.",
                payload=redact_payload(body),
                detail=exc.detail,
            ) from exc

        # Nothing was sent on a 401, so the caller may refresh and try again.
        if response.status_code == 401:
            raise VendorAuthError("Dialpad rejected the access token.", detail=response.text)
        if not response.ok:
            logger.warning(
                "Dialpad rejected SMS %s (HTTP %s): %s",
                redact_payload(body),
                response.status_code,
                response.text[:500],
            )
            raise SendFailed(
                "Dialpad rejected the SMS.",
                payload=redact_payload(body),
                detail=response.text,
                status_code=response.status_code,
            )

        try:
            confirmation = response.json()
        except ValueError:
            confirmation = {}
        message_id = confirmation.get("id") if isinstance(confirmation, dict) else None
        if not message_id:
            raise SendFailed(
                "Dialpad accepted the SMS without a confirmation id.",
                payload=redact_payload(body),
                detail=response.text,
                status_code=response.status_code,
            )
        return SendResult(id=str(message_id), provider=self.provider)


__all__ = ["BASE_URLS", "DialpadClient"]
