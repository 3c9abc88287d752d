"""
Translate vendor call, SMS and email payloads into the internal record shapes.

Normalization is a pure function of the payload: missing optional fields become
fixed sentinels, never the current time, so the same payload always yields the
same record. Records that cannot be keyed raise ``NormalizationError``; anything
else that needed a fallback emits a ``NormalizationWarning``.
"""

from __future__ import annotations

import base64
import binascii
import logging
import warnings
from datetime import datetime, timezone
from email.utils import parseaddr, parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from fieldsync.core.errors import NormalizationError, NormalizationWarning
from fieldsync.core.ports import NormalizedRecord
from fieldsync.schemas.records import (
    UNKNOWN,
    UNKNOWN_TIME,
    CallStatus,
    Channel,
    Direction,
    MessageStatus,
    MessageThread,
    NormalizedCallRecord,
    NormalizedMessageRecord,
    ResourceKind,
)
from fieldsync.utils.clock import ensure_aware

logger = logging.getLogger(__name__)

CALL_STATUS_MAP: Dict[str, CallStatus] = {
    "completed": CallStatus.COMPLETED,
    "hangup": CallStatus.COMPLETED,
    "missed": CallStatus.MISSED,
    "voicemail": CallStatus.VOICEMAIL,
    "busy": CallStatus.BUSY,
    "failed": CallStatus.FAILED,
    "no_answer": CallStatus.NO_ANSWER,
    "no-answer": CallStatus.NO_ANSWER,
}

SMS_STATUS_MAP: Dict[str, MessageStatus] = {
    "delivered": MessageStatus.DELIVERED,
    "sent": MessageStatus.DELIVERED,
    "pending": MessageStatus.PENDING,
    "queued": MessageStatus.PENDING,
    "sending": MessageStatus.PENDING,
    "failed": MessageStatus.FAILED,
    "undelivered": MessageStatus.FAILED,
    "received": MessageStatus.RECEIVED,
}

DIRECTION_MAP: Dict[str, Direction] = {
    "inbound": Direction.INBOUND,
    "incoming": Direction.INBOUND,
    "outbound": Direction.OUTBOUND,
    "outgoing": Direction.OUTBOUND,
}

BODY_PREFERENCE = ("text/html", "text/plain")

# Epoch values above this are milliseconds (year 5138 in seconds).
_MILLISECONDS_THRESHOLD = 1e11


def _warn(message: str) -> None:
    logger.warning(message)
    warnings.warn(message, NormalizationWarning, stacklevel=3)


def _dig(payload: Mapping[str, Any], path: str) -> Any:
    current: Any = payload
    for key in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def _first(payload: Mapping[str, Any], *paths: str) -> Any:
    """Value at the first dotted path that holds something non-empty."""
    for path in paths:
        value = _dig(payload, path)
        if value not in (None, "", [], {}):
            return value
    return None


def _as_text(value: Any, default: str = UNKNOWN) -> str:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if isinstance(value, Mapping):
        value = value.get("number") or value.get("email") or value.get("name")
    if value in (None, ""):
        return default
    return str(value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse epoch seconds or milliseconds, ISO 8601 and RFC 2822 dates.

    Returns ``None`` when the value cannot be read as an instant.
    """
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)

    number: Optional[float] = None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            number = None

    if number is not None:
        if abs(number) > _MILLISECONDS_THRESHOLD:
            number /= 1000
        try:
            return datetime.fromtimestamp(number, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return ensure_aware(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass
    try:
        return ensure_aware(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError):
        return None


def _decode_base64url(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8", errors="replace")


def _find_part(part: Mapping[str, Any], mime_type: str) -> Optional[Mapping[str, Any]]:
    """Depth-first search for the first part of ``mime_type`` that carries data."""
    if part.get("mimeType") == mime_type and _dig(part, "body.data"):
        return part
    for child in part.get("parts") or ():
        if isinstance(child, Mapping):
            found = _find_part(child, mime_type)
            if found is not None:
                return found
    return None


def _header_map(headers: Iterable[Mapping[str, Any]]) -> Dict[str, str]:
    mapped: Dict[str, str] = {}
    for header in headers:
        name = str(header.get("name") or "").lower()
        if name and name not in mapped:
            mapped[name] = str(header.get("value") or "")
    return mapped


class ResourceNormalizer:
    """Map one provider's raw payloads onto normalized records."""

    def __init__(self, provider: str) -> None:
        self._provider = provider

    @property
    def provider(self) -> str:
        return self._provider

    def normalize(self, kind: ResourceKind, payload: Mapping[str, Any]) -> NormalizedRecord:
        if kind == ResourceKind.CALL:
            return self.normalize_call(payload)
        if kind == ResourceKind.SMS:
            return self.normalize_message(payload)
        return self.normalize_email(payload)

    def normalize_call(self, payload: Mapping[str, Any]) -> NormalizedCallRecord:
        record_id = self._require_id(payload, "id", "call_id")
        raw_status = _first(payload, "state", "status")
        duration = _first(payload, "duration", "duration_seconds")

        return NormalizedCallRecord(
            id=record_id,
            provider=self._provider,
            direction=self._direction(payload, record_id),
            from_number=_as_text(_first(payload, "from.number", "from", "from_number", "external_number")),
            to_number=_as_text(_first(payload, "to.number", "to", "to_number", "internal_number")),
            status=self._call_status(raw_status, record_id),
            started_at=self._timestamp(_first(payload, "start_time", "date_started", "started_at"), record_id),
            ended_at=self._timestamp(_first(payload, "end_time", "date_ended", "ended_at"), record_id),
            duration_seconds=self._duration(duration, record_id),
            recording_url=_as_text(_first(payload, "recording_url", "recording_urls"), default=""),
            voicemail_url=_as_text(_first(payload, "voicemail_url", "voicemail_link"), default=""),
            customer_name=_as_text(_first(payload, "contact.name", "customer_name")),
            user_id=_as_text(_first(payload, "user_id", "target.id")),
        )

    def normalize_message(self, payload: Mapping[str, Any]) -> NormalizedMessageRecord:
        record_id = self._require_id(payload, "id", "message_id")
        direction = self._direction(payload, record_id)
        raw_status = _first(payload, "state", "status")
        if raw_status is None:
            status = MessageStatus.DELIVERED
        else:
            status = self._lookup(SMS_STATUS_MAP, raw_status, MessageStatus.FAILED, "SMS", record_id)

        is_read = payload.get("is_read")
        return NormalizedMessageRecord(
            id=record_id,
            provider=self._provider,
            channel=Channel.SMS,
            direction=direction,
            sender=_as_text(_first(payload, "from", "from_number")),
            recipient=_as_text(_first(payload, "to", "to_numbers", "to_number")),
            body=_as_text(_first(payload, "text", "body"), default=""),
            sent_at=self._timestamp(_first(payload, "date_created", "created_date", "timestamp"), record_id),
            status=status,
            customer_name=_as_text(_first(payload, "contact.name", "customer_name")),
            thread_id=_as_text(_first(payload, "thread_id", "conversation_id"), default=""),
            user_id=_as_text(_first(payload, "user_id", "target.id")),
            is_read=bool(is_read) if is_read is not None else direction == Direction.OUTBOUND,
        )

    def normalize_email(self, payload: Mapping[str, Any]) -> NormalizedMessageRecord:
        """Normalize a Gmail ``messages.get?format=full`` resource."""
        record_id = self._require_id(payload, "id")
        part = payload.get("payload") or {}
        headers = _header_map(part.get("headers") or ())
        labels = set(payload.get("labelIds") or ())

        if "DRAFT" in labels:
            direction, status = Direction.OUTBOUND, MessageStatus.PENDING
        elif "SENT" in labels:
            direction, status = Direction.OUTBOUND, MessageStatus.DELIVERED
        else:
            direction, status = Direction.INBOUND, MessageStatus.RECEIVED

        sender = headers.get("from") or ""
        recipient = headers.get("to") or ""
        counterpart = sender if direction == Direction.INBOUND else recipient
        display_name, _ = parseaddr(counterpart)

        sent_at = parse_timestamp(headers.get("date")) or parse_timestamp(payload.get("internalDate"))
        if sent_at is None:
            _warn(f"{self._provider} email {record_id} has no readable date; using epoch.")
            sent_at = UNKNOWN_TIME

        return NormalizedMessageRecord(
            id=record_id,
            provider=self._provider,
            channel=Channel.EMAIL,
            direction=direction,
            sender=sender or UNKNOWN,
            recipient=recipient or UNKNOWN,
            subject=headers.get("subject", ""),
            body=self._email_body(part, record_id),
            sent_at=sent_at,
            status=status,
            customer_name=display_name or UNKNOWN,
            thread_id=str(payload.get("threadId") or ""),
            is_read="UNREAD" not in labels,
        )

    def _email_body(self, part: Mapping[str, Any], record_id: str) -> str:
        for mime_type in BODY_PREFERENCE:
            found = _find_part(part, mime_type)
            if found is None:
                continue
            try:
                return _decode_base64url(str(found["body"]["data"]))
            except (binascii.Error, ValueError):
                _warn(f"{self._provider} email {record_id} has an undecodable {mime_type} body.")
        data = _dig(part, "body.data")
        if data and not part.get("parts"):
            try:
                return _decode_base64url(str(data))
            except (binascii.Error, ValueError):
                _warn(f"{self._provider} email {record_id} has an undecodable body.")
        return ""

    def _require_id(self, payload: Mapping[str, Any], *keys: str) -> str:
        value = _first(payload, *keys)
        if value is None:
            raise NormalizationError(f"{self._provider} record has no vendor id.")
        return str(value)

    def _direction(self, payload: Mapping[str, Any], record_id: str) -> Direction:
        raw = _first(payload, "direction")
        direction = DIRECTION_MAP.get(str(raw).lower()) if raw is not None else None
        if direction is None:
            _warn(f"{self._provider} record {record_id} has direction {raw!r}; assuming inbound.")
            return Direction.INBOUND
        return direction

    def _call_status(self, raw: Any, record_id: str) -> CallStatus:
        return self._lookup(CALL_STATUS_MAP, raw, CallStatus.FAILED, "call", record_id)

    def _lookup(self, table: Mapping[str, Any], raw: Any, fallback: Any, label: str, record_id: str) -> Any:
        mapped = table.get(str(raw).lower()) if raw is not None else None
        if mapped is None:
            _warn(
                f"Unmapped {self._provider} {label} status {raw!r} on record {record_id}; "
                f"using {fallback.value!r}."
            )
            return fallback
        return mapped

    def _timestamp(self, raw: Any, record_id: str) -> datetime:
        if raw is None:
            return UNKNOWN_TIME
        parsed = parse_timestamp(raw)
        if parsed is None:
            _warn(f"{self._provider} record {record_id} has unreadable timestamp {raw!r}; using epoch.")
            return UNKNOWN_TIME
        return parsed

    def _duration(self, raw: Any, record_id: str) -> int:
        if raw is None:
            return 0
        try:
            return max(int(float(raw)), 0)
        except (TypeError, ValueError):
            _warn(f"{self._provider} record {record_id} has unreadable duration {raw!r}.")
            return 0


def build_threads(messages: Iterable[NormalizedMessageRecord]) -> List[MessageThread]:
    """Group messages by counterpart, oldest message first, newest thread first."""
    grouped: Dict[str, List[NormalizedMessageRecord]] = {}
    for message in messages:
        grouped.setdefault(message.counterpart, []).append(message)

    threads: List[MessageThread] = []
    for counterpart, items in grouped.items():
        items.sort(key=lambda item: item.sent_at)
        names = [item.customer_name for item in items if item.customer_name != UNKNOWN]
        threads.append(
            MessageThread(
                counterpart=counterpart,
                customer_name=names[-1] if names else UNKNOWN,
                messages=items,
                last_message=items[-1],
                unread_count=sum(1 for item in items if not item.is_read),
            )
        )
    threads.sort(key=lambda thread: thread.last_message.sent_at, reverse=True)
    return threads


__all__ = [
    "BODY_PREFERENCE",
    "CALL_STATUS_MAP",
    "ResourceNormalizer",
    "SMS_STATUS_MAP",
    "build_threads",
    "parse_timestamp",
]
