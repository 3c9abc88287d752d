"""Signature verification and parsing for vendor push events."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple

from fieldsync.core.errors import NormalizationError, WebhookVerificationError
from fieldsync.schemas.records import ResourceKind
from fieldsync.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("x-fieldsync-signature", "x-signature", "x-hub-signature-256")
TIMESTAMP_HEADER = "x-webhook-timestamp"
MAX_WEBHOOK_AGE_SECONDS = 300

_KIND_HINTS = (
    ("call", ResourceKind.CALL),
    ("voicemail", ResourceKind.CALL),
    ("sms", ResourceKind.SMS),
    ("text", ResourceKind.SMS),
    ("mail", ResourceKind.EMAIL),
)


def compute_signature(secret: str, payload: bytes, timestamp: Optional[str] = None) -> str:
    """Hex HMAC-SHA256 over ``payload``, prefixed by ``"<timestamp>."`` when one is sent."""
    message = f"{timestamp}.".encode("utf-8") + payload if timestamp else payload
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class WebhookVerifier:
    """Check that a push event was signed with the provider's shared secret."""

    def __init__(
        self,
        secret: Optional[str],
        *,
        max_age_seconds: int = MAX_WEBHOOK_AGE_SECONDS,
        clock: Clock = utcnow,
    ) -> None:
        self._secret = secret
        self._max_age = timedelta(seconds=max_age_seconds)
        self._clock = clock

    def verify(self, raw_payload: bytes, headers: Mapping[str, str]) -> None:
        if not self._secret:
            raise WebhookVerificationError("No webhook secret is configured for this provider.")

        lowered = {key.lower(): value for key, value in headers.items()}
        provided = next((lowered[name] for name in SIGNATURE_HEADERS if lowered.get(name)), None)
        if not provided:
            raise WebhookVerificationError("Missing webhook signature header.")
        if provided.startswith("sha256="):
            provided = provided[len("sha256="):]

        timestamp = lowered.get(TIMESTAMP_HEADER)
        if timestamp:
            self._check_age(timestamp)

        expected = compute_signature(self._secret, raw_payload, timestamp)
        if not hmac.compare_digest(
            expected.encode("utf-8"), provided.strip().lower().encode("utf-8")
        ):
            logger.warning("Rejected webhook with an invalid signature.")
            raise WebhookVerificationError("Webhook signature mismatch.")

    def _check_age(self, timestamp: str) -> None:
        try:
            sent_at = int(timestamp)
        except ValueError as exc:
            raise WebhookVerificationError(f"Invalid webhook timestamp {timestamp!r}.") from exc
        age = abs(self._clock().timestamp() - sent_at)
        if age > self._max_age.total_seconds():
            raise WebhookVerificationError(f"Webhook timestamp is {int(age)}s old.")


def _kind_from_hint(value: Any) -> Optional[ResourceKind]:
    if not value:
        return None
    hint = str(value).lower()
    for needle, kind in _KIND_HINTS:
        if needle in hint:
            return kind
    return None


def parse_event(raw_payload: bytes) -> Tuple[ResourceKind, List[Dict[str, Any]]]:
    """Work out which resource a verified push event carries and return its items."""
    try:
        event = json.loads(raw_payload)
    except (UnicodeDecodeError, ValueError) as exc:
        raise NormalizationError("Webhook body is not valid JSON.") from exc
    if not isinstance(event, dict):
        raise NormalizationError("Webhook body must be a JSON object.")

    data = event.get("data", event)
    items = [item for item in data if isinstance(item, dict)] if isinstance(data, list) else [data]
    if not items or not isinstance(items[0], dict):
        raise NormalizationError("Webhook body carries no records.")

    kind = _kind_from_hint(event.get("type") or event.get("event_type"))
    if kind is None:
        sample = items[0]
        if "call_id" in sample or "duration" in sample:
            kind = ResourceKind.CALL
        elif "text" in sample:
            kind = ResourceKind.SMS
        elif "labelIds" in sample or "payload" in sample:
            kind = ResourceKind.EMAIL
        else:
            raise NormalizationError("Cannot tell which resource the webhook carries.")
    return kind, items


__all__ = ["WebhookVerifier", "compute_signature", "parse_event"]
