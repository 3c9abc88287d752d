"""
Gmail mailbox adapter built on the Gmail REST API and Google's OAuth endpoints.
"""

from __future__ import annotations

import base64
import logging
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

from fieldsync.clients.oauth import OAuthProviderConfig
from fieldsync.clients.vendor import Page, VendorClient
from fieldsync.core.config import GmailSettings
from fieldsync.core.errors import SendFailed, TransientNetworkError, VendorAuthError
from fieldsync.core.ports import HttpTransport
from fieldsync.models.oauth import TenantCredential
from fieldsync.schemas.auth import VendorProfile
from fieldsync.schemas.records import (
    UNKNOWN,
    MessageFilters,
    ResourceKind,
    SendMessageRequest,
    SendResult,
)
from fieldsync.utils.redaction import redact_payload

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
REVOKE_URL = "https://oauth2.googleapis.com/revoke"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
API_BASE_URL = "https://gmail.googleapis.com/gmail/v1/users/me"

DEFAULT_QUERY = "in:inbox"


def _gmail_date(value: str) -> str:
    return value[:10].replace("-", "/")


def build_search_query(filters: MessageFilters) -> str:
    """Translate list filters into a Gmail search expression."""
    terms: List[str] = [filters.query or DEFAULT_QUERY]
    if filters.phone_number:
        terms.append(f'"{filters.phone_number}"')
    if filters.start_date:
        terms.append(f"after:{_gmail_date(filters.start_date)}")
    if filters.end_date:
        terms.append(f"before:{_gmail_date(filters.end_date)}")
    return " ".join(terms)


class GmailClient(VendorClient):
    """Read and send mail for a tenant's connected Google account."""

    provider = "gmail"
    capabilities = frozenset({ResourceKind.EMAIL})
    message_kind = ResourceKind.EMAIL

    def __init__(self, settings: GmailSettings, transport: HttpTransport) -> None:
        super().__init__(transport)
        self._settings = settings

    @property
    def oauth_config(self) -> OAuthProviderConfig:
        return OAuthProviderConfig(
            provider=self.provider,
            client_id=self._settings.client_id,
            client_secret=self._settings.client_secret,
            redirect_uri=self._settings.redirect_uri,
            authorize_url=AUTHORIZE_URL,
            token_url=TOKEN_URL,
            revoke_url=REVOKE_URL,
            revoke_style="form",
            scopes=tuple(self._settings.scopes),
            extra_authorize_params={
                "access_type": "offline",
                "include_granted_scopes": "true",
                "prompt": "consent",
            },
        )

    async def fetch_profile(self, credential: TenantCredential) -> VendorProfile:
        payload = await self._get_json(credential, USERINFO_URL)
        return VendorProfile(
            id=str(payload.get("id") or UNKNOWN),
            email=payload.get("email") or UNKNOWN,
            display_name=payload.get("name") or payload.get("email") or UNKNOWN,
            raw=payload,
        )

    async def fetch_messages(
        self, credential: TenantCredential, filters: MessageFilters, cursor: Optional[str]
    ) -> Page:
        listing = await self._get_json(
            credential,
            f"{API_BASE_URL}/messages",
            params={
                "q": build_search_query(filters),
                "maxResults": filters.limit,
                "pageToken": cursor,
            },
        )

        items: List[Dict[str, Any]] = []
        for entry in listing.get("messages") or []:
            message_id = entry.get("id")
            if not message_id:
                continue
            items.append(
                await self._get_json(
                    credential,
                    f"{API_BASE_URL}/messages/{message_id}",
                    params={"format": "full"},
                )
            )
        return items, listing.get("nextPageToken") or None

    async def send_message(
        self, credential: TenantCredential, request: SendMessageRequest
    ) -> SendResult:
        message = EmailMessage()
        message["To"] = request.to
        if request.sender:
            message["From"] = request.sender
        message["Subject"] = request.subject or ""
        message.set_content(request.body)
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")

        addressing = {"to": request.to, "from": request.sender, "text": request.body}
        try:
            response = await self._transport.request(
                "POST",
                f"{API_BASE_URL}/messages/send",
                headers={**credential.authorization_header, "Content-Type": "application/json"},
                json={"raw": raw},
                retry=False,
            )
        except TransientNetworkError as exc:
            raise SendFailed(
                "Gmail could not be reached to send the email.",
                payload=redact_payload(addressing),
                detail=exc.detail,
            ) from exc

        if response.status_code == 401:
            raise VendorAuthError("Gmail rejected the access token.", detail=response.text)
        if not response.ok:
            logger.warning(
                "Gmail rejected email %s (HTTP %s): %s",
                redact_payload(addressing),
                response.status_code,
                response.text[:500],
            )
            raise SendFailed(
                "Gmail rejected the email.",
                payload=redact_payload(addressing),
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
                "Gmail accepted the email without a confirmation id.",
                payload=redact_payload(addressing),
                detail=response.text,
                status_code=response.status_code,
            )
        return SendResult(id=str(message_id), provider=self.provider)


__all__ = ["GmailClient", "build_search_query"]
