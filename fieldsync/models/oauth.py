"""
Domain models for delegated vendor credentials and connected vendor accounts.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class TenantCredential(BaseModel):
    """Decrypted OAuth credential set for one tenant on one vendor."""

    access_token: str = Field(..., repr=False)
    refresh_token: Optional[str] = Field(None, repr=False)
    token_type: str = "bearer"
    expires_at: Optional[datetime] = Field(
        None,
        description="Absolute expiry; None means valid until the vendor answers 401.",
    )
    scope: str = ""

    def is_valid_at(self, now: datetime) -> bool:
        return self.expires_at is None or now < self.expires_at

    @property
    def authorization_header(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}


class AccountStatus(str, Enum):
    PENDING = "pending"
    CONNECTED = "connected"
    NEEDS_REAUTHORIZATION = "needs_reauthorization"
    DISCONNECTED = "disconnected"


class VendorAccountRecord(BaseModel):
    """Connection record owned by the persistence layer; never holds secrets."""

    tenant_id: str
    account_id: str
    provider: str
    status: AccountStatus = AccountStatus.PENDING
    user_info: Dict[str, Any] = Field(default_factory=dict)
    last_sync: Optional[datetime] = None
    connected_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_connected(self) -> bool:
        return self.status == AccountStatus.CONNECTED


__all__ = ["AccountStatus", "TenantCredential", "VendorAccountRecord"]
