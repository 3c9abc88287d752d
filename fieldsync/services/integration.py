"""
Integration facade: the single entry point the rest of the application uses to
talk to a vendor on a tenant's behalf.

It wires the OAuth client, token store, normalizer and sync pipeline together
for one vendor and owns the account lifecycle (pending, connected,
needs re-authorization, disconnected).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Set

from fieldsync.clients.oauth import OAuthClient
from fieldsync.clients.state_codec import NonceRegistry, StateCodec
from fieldsync.clients.vendor import Page, VendorClient
from fieldsync.core.errors import (
    IntegrationError,
    InvalidState,
    NotConnected,
    RefreshError,
    RefreshRejected,
    UnsupportedOperation,
    VendorAuthError,
)
from fieldsync.core.ports import CredentialAction, HttpTransport, IntegrationRepository, T
from fieldsync.models.oauth import AccountStatus, TenantCredential, VendorAccountRecord
from fieldsync.schemas.auth import AuthorizationResult
from fieldsync.schemas.records import (
    CallFilters,
    MessageFilters,
    MessageThread,
    NormalizedCallRecord,
    NormalizedMessageRecord,
    ResourceKind,
    SendMessageRequest,
    SendResult,
)
from fieldsync.services.demo_data import demo_calls, demo_emails, demo_messages
from fieldsync.services.normalizer import ResourceNormalizer, build_threads
from fieldsync.services.sync import SyncPipeline, SyncReport, SyncTrigger
from fieldsync.services.token_cipher import TokenCipherService
from fieldsync.services.token_store import Refresher, TokenStore
from fieldsync.services.webhooks import WebhookVerifier, parse_event
from fieldsync.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

Fetch = Callable[[TenantCredential, Optional[str]], Awaitable[Page]]


class IntegrationFacade:
    """Connect, sync and send through one vendor for any number of tenants."""

    def __init__(
        self,
        *,
        vendor: VendorClient,
        transport: HttpTransport,
        repository: IntegrationRepository,
        cipher: TokenCipherService,
        state_codec: StateCodec,
        nonce_registry: Optional[NonceRegistry] = None,
        webhook_secret: Optional[str] = None,
        demo_fallback: bool = False,
        clock: Clock = utcnow,
    ) -> None:
        self._vendor = vendor
        self._oauth = OAuthClient(vendor.oauth_config, transport, clock=clock)
        self._repo = repository
        self._tokens = TokenStore(
            provider=vendor.provider, repository=repository, cipher=cipher, clock=clock
        )
        self._codec = state_codec
        self._nonces = nonce_registry or NonceRegistry(ttl=state_codec.max_age, clock=clock)
        self._pipeline = SyncPipeline(ResourceNormalizer(vendor.provider), repository)
        self._webhooks = WebhookVerifier(webhook_secret, clock=clock)
        self._demo_fallback = demo_fallback
        self._clock = clock
        self._active_syncs: Dict[str, Set[asyncio.Event]] = {}

    @property
    def provider(self) -> str:
        return self._vendor.provider

    @property
    def token_store(self) -> TokenStore:
        return self._tokens

    def generate_auth_url(self, tenant_id: str, account_id: str) -> str:
        """Record a pending connection and return the vendor consent URL."""
        account = self._repo.load_account(tenant_id, self.provider)
        now = self._clock()
        if account is None:
            self._repo.save_account(
                VendorAccountRecord(
                    tenant_id=tenant_id,
                    account_id=account_id,
                    provider=self.provider,
                    status=AccountStatus.PENDING,
                    created_at=now,
                    updated_at=now,
                )
            )
        elif not account.is_connected:
            self._repo.save_account(
                account.model_copy(
                    update={"account_id": account_id, "status": AccountStatus.PENDING, "updated_at": now}
                )
            )

        state = self._codec.encode(tenant_id, account_id)
        return self._oauth.build_authorization_url(state)

    async def complete_authorization(self, tenant_id: str, code: str, state: str) -> AuthorizationResult:
        """Finish the OAuth callback; the account is connected only once the profile is known."""
        try:
            decoded = self._codec.decode(state, expected_tenant_id=tenant_id)
            if not self._nonces.consume(decoded.nonce):
                raise InvalidState("OAuth state has already been used.")
            credential = await self._oauth.exchange_code(code)
            profile = await self._vendor.fetch_profile(credential)
        except IntegrationError as exc:
            logger.warning(
                "%s authorization failed for tenant %s (%s): %s %s",
                self.provider,
                tenant_id,
                exc.error_kind,
                exc,
                exc.detail or "",
            )
            return AuthorizationResult(success=False, error_kind=exc.error_kind, message=exc.user_message)

        self._tokens.put(tenant_id, credential)
        now = self._clock()
        account = self._repo.load_account(tenant_id, self.provider)
        user_info = profile.model_dump(exclude={"raw"})
        if account is None:
            account = VendorAccountRecord(
                tenant_id=tenant_id,
                account_id=decoded.account_id,
                provider=self.provider,
                created_at=now,
                updated_at=now,
            )
        self._repo.save_account(
            account.model_copy(
                update={
                    "account_id": decoded.account_id,
                    "status": AccountStatus.CONNECTED,
                    "user_info": user_info,
                    "connected_at": now,
                    "updated_at": now,
                }
            )
        )
        logger.info("Connected %s account %s for tenant %s.", self.provider, profile.id, tenant_id)
        return AuthorizationResult(success=True, profile=profile)

    def is_authenticated(self, tenant_id: str) -> bool:
        return self._tokens.is_valid(tenant_id)

    def account_status(self, tenant_id: str) -> Optional[VendorAccountRecord]:
        return self._repo.load_account(tenant_id, self.provider)

    async def disconnect(self, tenant_id: str) -> bool:
        """Stop syncs, revoke and forget the credential; returns whether the vendor confirmed revocation."""
        for event in self._active_syncs.pop(tenant_id, set()):
            event.set()

        credential = self._tokens.get(tenant_id)
        revoked = await self._oauth.revoke(credential) if credential is not None else False
        self._tokens.delete(tenant_id)

        account = self._repo.load_account(tenant_id, self.provider)
        if account is not None:
            self._repo.save_account(
                account.model_copy(
                    update={
                        "status": AccountStatus.DISCONNECTED,
                        "user_info": {},
                        "connected_at": None,
                        "updated_at": self._clock(),
                    }
                )
            )
        logger.info("Disconnected %s for tenant %s (revoked=%s).", self.provider, tenant_id, revoked)
        return revoked

    async def with_fresh_token(self, tenant_id: str, action: CredentialAction[T]) -> T:
        """Run ``action`` with a valid credential, refreshing and retrying once on a 401."""
        credential = self._tokens.get(tenant_id)
        if credential is None:
            raise NotConnected(f"{self.provider} is not connected for tenant {tenant_id}.")

        refresher = self._refresher(tenant_id)
        if not self._tokens.is_credential_valid(credential):
            credential = await self._tokens.refresh(tenant_id, credential, refresher)

        try:
            return await action(credential)
        except VendorAuthError:
            logger.info("%s answered 401 for tenant %s; refreshing once.", self.provider, tenant_id)

        credential = await self._tokens.refresh(tenant_id, credential, refresher)
        return await action(credential)

    def _refresher(self, tenant_id: str) -> Refresher:
        async def refresh(credential: TenantCredential) -> TenantCredential:
            if not credential.refresh_token:
                exc = RefreshError(f"No refresh token stored for {self.provider}.")
                self._require_reauthorization(tenant_id, exc)
                raise exc
            try:
                return await self._oauth.refresh(credential)
            except RefreshRejected as exc:
                self._require_reauthorization(tenant_id, exc)
                raise

        return refresh

    def _require_reauthorization(self, tenant_id: str, exc: RefreshError) -> None:
        logger.warning(
            "%s credential for tenant %s can no longer be refreshed (%s): %s",
            self.provider,
            tenant_id,
            exc.error_kind,
            exc.detail or exc,
        )
        self._tokens.delete(tenant_id)
        account = self._repo.load_account(tenant_id, self.provider)
        if account is not None:
            self._repo.save_account(
                account.model_copy(
                    update={"status": AccountStatus.NEEDS_REAUTHORIZATION, "updated_at": self._clock()}
                )
            )

    async def list_calls(
        self,
        tenant_id: str,
        filters: Optional[CallFilters] = None,
        *,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[NormalizedCallRecord]:
        filters = filters or CallFilters()
        if not self._vendor.supports(ResourceKind.CALL):
            raise UnsupportedOperation(f"{self.provider} does not expose call records.")
        if self._use_demo(tenant_id):
            return demo_calls(self.provider, now=self._clock(), user_id=filters.user_id)

        report = await self.sync(
            tenant_id,
            ResourceKind.CALL,
            lambda credential, cursor: self._vendor.fetch_calls(credential, filters, cursor),
            max_pages=filters.max_pages,
            trigger=trigger,
            cancel_event=cancel_event,
        )
        return list(report.records)

    async def list_messages(
        self,
        tenant_id: str,
        filters: Optional[MessageFilters] = None,
        *,
        trigger: SyncTrigger = SyncTrigger.MANUAL,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[NormalizedMessageRecord]:
        filters = filters or MessageFilters()
        report = await self._sync_messages(tenant_id, filters, trigger, cancel_event)
        if report is None:
            return self._demo_messages(tenant_id, filters)
        return list(report.records)

    async def list_threads(
        self, tenant_id: str, filters: Optional[MessageFilters] = None
    ) -> List[MessageThread]:
        """Group every fetched message, new or previously stored, by counterpart."""
        filters = filters or MessageFilters()
        report = await self._sync_messages(tenant_id, filters, SyncTrigger.MANUAL, None)
        if report is None:
            return build_threads(self._demo_messages(tenant_id, filters))
        return build_threads(report.observed)

    async def _sync_messages(
        self,
        tenant_id: str,
        filters: MessageFilters,
        trigger: SyncTrigger,
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[SyncReport]:
        if self._use_demo(tenant_id):
            return None
        return await self.sync(
            tenant_id,
            self._vendor.message_kind,
            lambda credential, cursor: self._vendor.fetch_messages(credential, filters, cursor),
            max_pages=filters.max_pages,
            trigger=trigger,
            cancel_event=cancel_event,
        )

    def _demo_messages(self, tenant_id: str, filters: MessageFilters) -> List[NormalizedMessageRecord]:
        if self._vendor.message_kind == ResourceKind.EMAIL:
            return demo_emails(self.provider, now=self._clock())
        return demo_messages(self.provider, now=self._clock(), user_id=filters.user_id)

    def _use_demo(self, tenant_id: str) -> bool:
        return self._demo_fallback and not self._tokens.exists(tenant_id)

    async def sync(
        self,
        tenant_id: str,
        kind: ResourceKind,
        fetch: Fetch,
        *,
        max_pages: int = 1,
        trigger: SyncTrigger = SyncTrigger.SCHEDULED,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SyncReport:
        """Pull pages through ``fetch(credential, cursor)`` into the shared pipeline.

        The sync stops between pages once ``cancel_event`` is set; ``disconnect``
        sets it for every sync running for the tenant.
        """
        event = cancel_event or asyncio.Event()
        self._active_syncs.setdefault(tenant_id, set()).add(event)

        async def fetch_page(cursor: Optional[str]):
            return await self.with_fresh_token(tenant_id, lambda credential: fetch(credential, cursor))

        try:
            report = await self._pipeline.run(
                tenant_id,
                kind,
                fetch_page,
                trigger=trigger,
                max_pages=max_pages,
                cancel_event=event,
            )
        finally:
            active = self._active_syncs.get(tenant_id)
            if active is not None:
                active.discard(event)
                if not active:
                    del self._active_syncs[tenant_id]

        if not report.cancelled:
            self._touch_last_sync(tenant_id)
        return report

    def _touch_last_sync(self, tenant_id: str) -> None:
        account = self._repo.load_account(tenant_id, self.provider)
        if account is not None:
            now = self._clock()
            self._repo.save_account(account.model_copy(update={"last_sync": now, "updated_at": now}))

    async def send_message(
        self,
        tenant_id: str,
        to: str,
        body: str,
        *,
        sender: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> SendResult:
        request = SendMessageRequest(to=to, body=body, sender=sender, subject=subject)
        result = await self.with_fresh_token(
            tenant_id, lambda credential: self._vendor.send_message(credential, request)
        )
        logger.info("Sent %s message %s for tenant %s.", self.provider, result.id, tenant_id)
        return result

    def handle_inbound_event(
        self,
        tenant_id: str,
        raw_payload: bytes,
        signature_headers: Mapping[str, str],
    ) -> SyncReport:
        """Verify a pushed event and feed it through the same pipeline as pull sync."""
        self._webhooks.verify(raw_payload, signature_headers)
        if not self._tokens.exists(tenant_id):
            raise NotConnected(f"{self.provider} is not connected for tenant {tenant_id}.")

        kind, items = parse_event(raw_payload)
        if not self._vendor.supports(kind):
            raise UnsupportedOperation(f"{self.provider} does not deliver {kind.value} events.")
        return self._pipeline.ingest(tenant_id, kind, items, trigger=SyncTrigger.WEBHOOK)


__all__ = ["IntegrationFacade"]
