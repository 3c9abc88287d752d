"""
Per-tenant storage and refresh coordination for delegated vendor credentials.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from functools import partial
from typing import Awaitable, Callable, Dict, Optional

from fieldsync.core.errors import NotConnected
from fieldsync.core.ports import CredentialRepository
from fieldsync.models.oauth import TenantCredential
from fieldsync.services.token_cipher import TokenCipherService
from fieldsync.utils.clock import Clock, ensure_aware, utcnow

logger = logging.getLogger(__name__)

Refresher = Callable[[TenantCredential], Awaitable[TenantCredential]]


class TokenStore:
    """Reads and writes one provider's encrypted credentials, one record per tenant.

    The repository is the source of truth and is read on every call. The only
    in-process state is the table of in-flight refresh tasks, which makes sure a
    tenant never has more than one refresh grant running at a time.
    """

    def __init__(
        self,
        *,
        provider: str,
        repository: CredentialRepository,
        cipher: TokenCipherService,
        clock: Clock = utcnow,
    ) -> None:
        self._provider = provider
        self._repo = repository
        self._cipher = cipher
        self._clock = clock
        self._inflight: Dict[str, "asyncio.Task[TenantCredential]"] = {}

    def get(self, tenant_id: str) -> Optional[TenantCredential]:
        record = self._repo.load_credential(tenant_id, self._provider)
        if not record:
            return None

        encrypted_access = record.get("access_token_encrypted")
        encrypted_refresh = record.get("refresh_token_encrypted")
        if not encrypted_access:
            logger.error(
                "Stored %s credential for tenant %s has no access token.",
                self._provider,
                tenant_id,
            )
            return None

        try:
            access_token = self._cipher.decrypt(encrypted_access)
            refresh_token = self._cipher.decrypt(encrypted_refresh) if encrypted_refresh else None
        except ValueError:
            logger.error(
                "Stored %s credential for tenant %s cannot be decrypted with the configured keys.",
                self._provider,
                tenant_id,
            )
            return None

        expires_at_raw = record.get("expires_at")
        credential = TenantCredential(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type=record.get("token_type") or "bearer",
            expires_at=ensure_aware(datetime.fromisoformat(expires_at_raw)) if expires_at_raw else None,
            scope=record.get("scope") or "",
        )

        if self._cipher.needs_rotation(encrypted_access):
            logger.info("Re-encrypting %s credential for tenant %s under the current key.", self._provider, tenant_id)
            self.put(tenant_id, credential)

        return credential

    def put(self, tenant_id: str, credential: TenantCredential) -> None:
        """Replace the tenant's credential set with a single repository write."""
        record = {
            "tenant_id": tenant_id,
            "provider": self._provider,
            "access_token_encrypted": self._cipher.encrypt(credential.access_token),
            "refresh_token_encrypted": (
                self._cipher.encrypt(credential.refresh_token) if credential.refresh_token else None
            ),
            "token_type": credential.token_type,
            "scope": credential.scope,
            "expires_at": credential.expires_at.isoformat() if credential.expires_at else None,
            "updated_at": self._clock().isoformat(),
        }
        self._repo.save_credential(tenant_id, self._provider, record)

    def delete(self, tenant_id: str) -> None:
        self._repo.delete_credential(tenant_id, self._provider)

    def exists(self, tenant_id: str) -> bool:
        return self._repo.load_credential(tenant_id, self._provider) is not None

    def is_valid(self, tenant_id: str) -> bool:
        credential = self.get(tenant_id)
        return credential is not None and self.is_credential_valid(credential)

    def is_credential_valid(self, credential: TenantCredential) -> bool:
        return credential.is_valid_at(self._clock())

    async def refresh(
        self,
        tenant_id: str,
        stale: TenantCredential,
        refresher: Refresher,
    ) -> TenantCredential:
        """Return a credential newer than ``stale``, running at most one refresh per tenant.

        Concurrent callers share the in-flight task and all observe its result or
        exception. A caller whose stale token has already been replaced by a valid
        one gets the replacement without another vendor call.
        """
        task = self._inflight.get(tenant_id)
        if task is None:
            current = self.get(tenant_id)
            if current is None:
                raise NotConnected(f"No {self._provider} credential stored for tenant {tenant_id}.")
            if current.access_token != stale.access_token and self.is_credential_valid(current):
                return current

            task = asyncio.ensure_future(self._run_refresh(tenant_id, current, refresher))
            self._inflight[tenant_id] = task
            task.add_done_callback(partial(self._clear_inflight, tenant_id))

        return await asyncio.shield(task)

    async def _run_refresh(
        self,
        tenant_id: str,
        credential: TenantCredential,
        refresher: Refresher,
    ) -> TenantCredential:
        refreshed = await refresher(credential)
        if self._repo.load_credential(tenant_id, self._provider) is None:
            # Disconnected while the grant was in flight.
            raise NotConnected(f"{self._provider} was disconnected for tenant {tenant_id}.")
        self.put(tenant_id, refreshed)
        logger.info("Refreshed %s credential for tenant %s.", self._provider, tenant_id)
        return refreshed

    def _clear_inflight(self, tenant_id: str, task: "asyncio.Task[TenantCredential]") -> None:
        if self._inflight.get(tenant_id) is task:
            del self._inflight[tenant_id]
        if not task.cancelled():
            task.exception()


__all__ = ["Refresher", "TokenStore"]
