"""
Application-session dependencies.

These answer which tenant is using the application. They never grant access to a
vendor's API; that is the integration facade's job.
"""

from http import HTTPStatus
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request

from fieldsync.core.ports import AppSessionProvider

TENANT_HEADER = "X-Tenant-ID"
TENANT_COOKIE = "fieldsync_tenant"


class HeaderSessionProvider:
    """Reads the tenant from the ``X-Tenant-ID`` header, falling back to a cookie."""

    def __init__(self, request: Request) -> None:
        self._request = request

    def tenant_id(self) -> str:
        value: Optional[str] = self._request.headers.get(TENANT_HEADER) or self._request.cookies.get(
            TENANT_COOKIE
        )
        if not value:
            raise HTTPException(
                status_code=HTTPStatus.UNAUTHORIZED,
                detail="Missing tenant identifier.",
            )
        return value


def get_session_provider(request: Request) -> AppSessionProvider:
    """FastAPI dependency returning the application session provider."""
    return HeaderSessionProvider(request)


def get_tenant_id(
    session: Annotated[AppSessionProvider, Depends(get_session_provider)],
) -> str:
    """FastAPI dependency returning the current tenant identifier."""
    return session.tenant_id()


__all__ = ["HeaderSessionProvider", "get_session_provider", "get_tenant_id"]
