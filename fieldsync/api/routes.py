"""
FastAPI routes for vendor integrations.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any, Dict, List, Optional, Sequence
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from fieldsync.core.config import AppSettings
from fieldsync.core.errors import (
    ConfigurationError,
    IntegrationError,
    InvalidState,
    NormalizationError,
    NotConnected,
    RefreshError,
    SendFailed,
    TokenExchangeError,
    TransientNetworkError,
    UnsupportedOperation,
    VendorAuthError,
    VendorRequestError,
    WebhookVerificationError,
)
from fieldsync.core.ports import DelegatedCredentialProvider
from fieldsync.dependencies import (
    get_app_settings,
    get_credential_provider,
    get_integration_facade,
    get_tenant_id,
)
from fieldsync.schemas import (
    AuthorizationResult,
    CallFilters,
    MessageFilters,
    OAuthCallbackPayload,
    SendMessageRequest,
    SendResult,
)
from fieldsync.services import IntegrationFacade

router = APIRouter()
logger = logging.getLogger(__name__)

Facade = Annotated[IntegrationFacade, Depends(get_integration_facade)]
Credentials = Annotated[DelegatedCredentialProvider, Depends(get_credential_provider)]
TenantId = Annotated[str, Depends(get_tenant_id)]
Settings = Annotated[AppSettings, Depends(get_app_settings)]

_ERROR_STATUS = (
    (InvalidState, HTTPStatus.BAD_REQUEST),
    (TokenExchangeError, HTTPStatus.BAD_REQUEST),
    (NotConnected, HTTPStatus.UNAUTHORIZED),
    (RefreshError, HTTPStatus.UNAUTHORIZED),
    (VendorAuthError, HTTPStatus.UNAUTHORIZED),
    (WebhookVerificationError, HTTPStatus.FORBIDDEN),
    (UnsupportedOperation, HTTPStatus.BAD_REQUEST),
    (NormalizationError, HTTPStatus.UNPROCESSABLE_ENTITY),
    (SendFailed, HTTPStatus.BAD_GATEWAY),
    (VendorRequestError, HTTPStatus.BAD_GATEWAY),
    (TransientNetworkError, HTTPStatus.SERVICE_UNAVAILABLE),
    (ConfigurationError, HTTPStatus.SERVICE_UNAVAILABLE),
)
_STATUS_BY_KIND = {error_cls.__name__: code for error_cls, code in _ERROR_STATUS}


def _status_for(exc: IntegrationError) -> HTTPStatus:
    for error_cls, code in _ERROR_STATUS:
        if isinstance(exc, error_cls):
            return code
    return HTTPStatus.BAD_GATEWAY


def _http_error(exc: IntegrationError) -> HTTPException:
    """Translate an integration failure into a terse client-facing error."""
    code = _status_for(exc)
    logger.warning("Integration request failed (%s): %s %s", exc.error_kind, exc, exc.detail or "")
    detail: Dict[str, Any] = {"error_kind": exc.error_kind, "message": exc.user_message}
    if isinstance(exc, SendFailed):
        detail["payload"] = exc.payload
    return HTTPException(status_code=code, detail=detail)


def _dump(records: Sequence[BaseModel]) -> List[Dict[str, Any]]:
    return [record.model_dump(mode="json") for record in records]


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/integrations/{provider}/authorize", status_code=HTTPStatus.OK)
async def start_oauth_flow(
    request: Request,
    facade: Facade,
    tenant_id: TenantId,
    account_id: str = Query(..., description="Vendor account record being connected."),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the vendor consent screen.",
    ),
) -> Any:
    """Kick off the OAuth flow by recording a pending account and building the consent URL."""
    authorization_url = facade.generate_auth_url(tenant_id, account_id)
    if redirect or _wants_html(request):
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)
    return {"provider": facade.provider, "authorization_url": authorization_url}


@router.post("/integrations/{provider}/callback", status_code=HTTPStatus.OK)
async def handle_oauth_callback(
    payload: OAuthCallbackPayload,
    facade: Facade,
    tenant_id: TenantId,
) -> AuthorizationResult:
    """Complete the OAuth exchange; the account is connected only after the profile fetch."""
    result = await facade.complete_authorization(tenant_id, payload.code, payload.state)
    if not result.success:
        raise HTTPException(
            status_code=_STATUS_BY_KIND.get(result.error_kind or "", HTTPStatus.BAD_GATEWAY),
            detail={"error_kind": result.error_kind, "message": result.message},
        )
    return result


@router.get("/integrations/{provider}/callback", status_code=HTTPStatus.OK)
async def handle_oauth_callback_get(
    request: Request,
    facade: Facade,
    tenant_id: TenantId,
    settings: Settings,
    state: str = Query(..., description="OAuth state token."),
    code: str = Query(..., description="Authorization code returned by the vendor."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    result = await facade.complete_authorization(tenant_id, code, state)

    redirect_target = settings.frontend_base_url
    if redirect_target and (redirect or _wants_html(request)):
        outcome = {"provider": facade.provider, "status": "connected" if result.success else "failed"}
        if result.error_kind:
            outcome["error"] = result.error_kind
        return RedirectResponse(
            url=f"{redirect_target}?{urlencode(outcome)}",
            status_code=HTTPStatus.TEMPORARY_REDIRECT,
        )

    if not result.success:
        return JSONResponse(
            status_code=_STATUS_BY_KIND.get(result.error_kind or "", HTTPStatus.BAD_GATEWAY),
            content={"detail": {"error_kind": result.error_kind, "message": result.message}},
        )
    return JSONResponse(content=result.model_dump(mode="json"))


@router.get("/integrations/{provider}/status", status_code=HTTPStatus.OK)
async def integration_status(facade: Facade, credentials: Credentials, tenant_id: TenantId) -> dict:
    """Report whether the tenant holds a valid credential and the account's lifecycle state."""
    account = facade.account_status(tenant_id)
    return {
        "provider": facade.provider,
        "authenticated": credentials.is_authenticated(tenant_id),
        "status": account.status.value if account else None,
        "user_info": account.user_info if account else {},
        "connected_at": account.connected_at.isoformat() if account and account.connected_at else None,
        "last_sync": account.last_sync.isoformat() if account and account.last_sync else None,
    }


@router.get("/integrations/{provider}/calls", status_code=HTTPStatus.OK)
async def list_calls(
    facade: Facade,
    tenant_id: TenantId,
    filters: Annotated[CallFilters, Query()],
) -> dict:
    """Pull call logs, returning only records not seen before."""
    try:
        records = await facade.list_calls(tenant_id, filters)
    except IntegrationError as exc:
        raise _http_error(exc) from exc
    return {"provider": facade.provider, "count": len(records), "records": _dump(records)}


@router.get("/integrations/{provider}/messages", status_code=HTTPStatus.OK)
async def list_messages(
    facade: Facade,
    tenant_id: TenantId,
    filters: Annotated[MessageFilters, Query()],
) -> dict:
    """Pull SMS or email messages, returning only records not seen before."""
    try:
        records = await facade.list_messages(tenant_id, filters)
    except IntegrationError as exc:
        raise _http_error(exc) from exc
    return {"provider": facade.provider, "count": len(records), "records": _dump(records)}


@router.get("/integrations/{provider}/threads", status_code=HTTPStatus.OK)
async def list_threads(
    facade: Facade,
    tenant_id: TenantId,
    filters: Annotated[MessageFilters, Query()],
) -> dict:
    """Group fetched messages into conversations, newest first."""
    try:
        threads = await facade.list_threads(tenant_id, filters)
    except IntegrationError as exc:
        raise _http_error(exc) from exc
    return {"provider": facade.provider, "count": len(threads), "threads": _dump(threads)}


@router.post("/integrations/{provider}/messages", status_code=HTTPStatus.CREATED)
async def send_message(
    payload: SendMessageRequest,
    facade: Facade,
    tenant_id: TenantId,
) -> SendResult:
    """Send an SMS or email; failures are reported, never retried."""
    try:
        return await facade.send_message(
            tenant_id,
            payload.to,
            payload.body,
            sender=payload.sender,
            subject=payload.subject,
        )
    except IntegrationError as exc:
        raise _http_error(exc) from exc


@router.delete("/integrations/{provider}/connection", status_code=HTTPStatus.OK)
async def disconnect(facade: Facade, tenant_id: TenantId) -> dict:
    """Revoke and forget the tenant's credential."""
    revoked = await facade.disconnect(tenant_id)
    return {"provider": facade.provider, "status": "disconnected", "revoked": revoked}


@router.post("/integrations/{provider}/webhook/{tenant_id}", status_code=HTTPStatus.OK)
async def receive_webhook(
    tenant_id: str,
    request: Request,
    facade: Facade,
    event_id: Optional[str] = Query(default=None, description="Vendor delivery identifier."),
) -> dict:
    """Verify a pushed vendor event and ingest it through the sync pipeline."""
    raw_payload = await request.body()
    try:
        report = facade.handle_inbound_event(tenant_id, raw_payload, dict(request.headers))
    except IntegrationError as exc:
        raise _http_error(exc) from exc

    logger.info(
        "Processed %s webhook %s for tenant %s.",
        facade.provider,
        event_id or "-",
        tenant_id,
    )
    return {
        "provider": facade.provider,
        "kind": report.kind.value,
        "received": report.fetched,
        "stored": len(report.records),
        "duplicates": report.duplicates,
        "failed": report.failed,
    }


__all__ = ["router"]
