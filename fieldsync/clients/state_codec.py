"""
OAuth ``state`` encoding.

A state value binds the vendor callback to the tenant and vendor account that
started the flow. It is not encrypted, only signed: URL-safe base64 of an
HMAC-SHA256 signature followed by the canonical JSON payload.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import secrets
from datetime import datetime, timedelta
from hashlib import sha256
from typing import Dict, Optional

from pydantic import ValidationError

from fieldsync.core.errors import ConfigurationError, InvalidState
from fieldsync.schemas.auth import AuthorizationState
from fieldsync.utils.clock import Clock, ensure_aware, utcnow

_SIGNATURE_BYTES = 32
_CLOCK_SKEW = timedelta(seconds=30)


class StateCodec:
    """Encode and decode OAuth state values to guard against tampering and replay."""

    def __init__(
        self,
        secret_key: str,
        *,
        max_age_seconds: int = 600,
        clock: Clock = utcnow,
    ) -> None:
        if not secret_key:
            raise ConfigurationError("OAuth state signing key must be provided.")
        self._secret_key = secret_key.encode("utf-8")
        self._max_age = timedelta(seconds=max_age_seconds)
        self._clock = clock

    @property
    def max_age(self) -> timedelta:
        return self._max_age

    def encode(self, tenant_id: str, account_id: str) -> str:
        payload = {
            "tenant_id": tenant_id,
            "account_id": account_id,
            "nonce": secrets.token_urlsafe(16),
            "issued_at": self._clock().isoformat(),
        }
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
        signature = hmac.new(self._secret_key, serialized, sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized).decode("ascii")

    def decode(self, state: str, *, expected_tenant_id: Optional[str] = None) -> AuthorizationState:
        """Validate ``state`` and return its contents, raising ``InvalidState`` otherwise."""
        if not isinstance(state, str) or not state:
            raise InvalidState("Missing OAuth state.")

        try:
            decoded = base64.b64decode(state.encode("ascii"), altchars=b"-_", validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidState("OAuth state is not valid base64.") from exc

        if len(decoded) <= _SIGNATURE_BYTES:
            raise InvalidState("OAuth state is truncated.")

        signature, serialized = decoded[:_SIGNATURE_BYTES], decoded[_SIGNATURE_BYTES:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise InvalidState("Invalid OAuth state signature.")

        try:
            payload = json.loads(serialized)
            decoded_state = AuthorizationState.model_validate(payload)
        except (ValueError, ValidationError) as exc:
            raise InvalidState("OAuth state payload is malformed.") from exc

        issued_at = ensure_aware(decoded_state.issued_at)
        now = self._clock()
        if now - issued_at > self._max_age:
            raise InvalidState("OAuth state has expired.")
        if issued_at - now > _CLOCK_SKEW:
            raise InvalidState("OAuth state was issued in the future.")

        if expected_tenant_id is not None and decoded_state.tenant_id != expected_tenant_id:
            raise InvalidState("OAuth state does not belong to this tenant.")

        return decoded_state


class NonceRegistry:
    """Remembers consumed state nonces until they could no longer pass the age check."""

    def __init__(self, *, ttl: timedelta, clock: Clock = utcnow) -> None:
        self._ttl = ttl
        self._clock = clock
        self._consumed: Dict[str, datetime] = {}

    def consume(self, nonce: str) -> bool:
        """Mark ``nonce`` used; returns False when it was already consumed."""
        now = self._clock()
        self._consumed = {key: expiry for key, expiry in self._consumed.items() if expiry > now}
        if nonce in self._consumed:
            return False
        self._consumed[nonce] = now + self._ttl
        return True


__all__ = ["NonceRegistry", "StateCodec"]
