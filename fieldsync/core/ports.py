"""Collaborator interfaces the integration core depends on."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol, TypeVar, Union

from fieldsync.models.oauth import TenantCredential, VendorAccountRecord
from fieldsync.schemas.records import NormalizedCallRecord, NormalizedMessageRecord
from fieldsync.utils.http import TransportResponse

T = TypeVar("T")

NormalizedRecord = Union[NormalizedCallRecord, NormalizedMessageRecord]
CredentialAction = Callable[[TenantCredential], Awaitable[T]]


class HttpTransport(Protocol):
    """Fetch-like function used for every vendor call."""

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, Any]] = None,
        data: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        retry: bool = True,
    ) -> TransportResponse:
        ...


class CredentialRepository(Protocol):
    """Stores encrypted credential records keyed by (tenant, provider)."""

    def load_credential(self, tenant_id: str, provider: str) -> Optional[Dict[str, Any]]:
        ...

    def save_credential(self, tenant_id: str, provider: str, record: Dict[str, Any]) -> None:
        ...

    def delete_credential(self, tenant_id: str, provider: str) -> None:
        ...


class AccountRepository(Protocol):
    """Stores vendor account connection records."""

    def load_account(self, tenant_id: str, provider: str) -> Optional[VendorAccountRecord]:
        ...

    def save_account(self, account: VendorAccountRecord) -> None:
        ...


class RecordRepository(Protocol):
    """Stores normalized records and answers dedup lookups."""

    def exists_by_vendor_id(self, tenant_id: str, vendor_record_id: str) -> bool:
        ...

    def append_normalized_record(self, tenant_id: str, record: NormalizedRecord) -> None:
        ...


class IntegrationRepository(CredentialRepository, AccountRepository, RecordRepository, Protocol):
    """The full persistence collaborator."""


class AppSessionProvider(Protocol):
    """Answers who is using the application; never grants vendor access."""

    def tenant_id(self) -> str:
        ...


class DelegatedCredentialProvider(Protocol):
    """Answers what the application may do on a vendor's API for a tenant."""

    def is_authenticated(self, tenant_id: str) -> bool:
        ...

    async def with_fresh_token(self, tenant_id: str, action: CredentialAction[T]) -> T:
        ...


__all__ = [
    "AccountRepository",
    "AppSessionProvider",
    "CredentialAction",
    "CredentialRepository",
    "DelegatedCredentialProvider",
    "HttpTransport",
    "IntegrationRepository",
    "NormalizedRecord",
    "RecordRepository",
]
