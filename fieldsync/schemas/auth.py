"""Schemas related to OAuth flows."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AuthorizationState(BaseModel):
    """Decoded contents of an OAuth ``state`` value."""

    tenant_id: str
    account_id: str
    nonce: str
    issued_at: datetime


class VendorProfile(BaseModel):
    """The vendor-side identity a tenant connected with."""

    id: str
    email: str = "unknown"
    display_name: str = "unknown"
    raw: Dict[str, Any] = Field(default_factory=dict)


class AuthorizationResult(BaseModel):
    """Outcome of completing an OAuth callback."""

    success: bool
    profile: Optional[VendorProfile] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None


class OAuthCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    code: str = Field(..., description="Authorization code returned by the vendor.")
    state: str = Field(..., description="Opaque state token issued when starting OAuth.")


__all__ = [
    "AuthorizationResult",
    "AuthorizationState",
    "OAuthCallbackPayload",
    "VendorProfile",
]
