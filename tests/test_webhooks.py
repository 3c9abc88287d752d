try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import json
from datetime import datetime, timezone

import pytest

from fieldsync.core.errors import NormalizationError, WebhookVerificationError
from fieldsync.schemas.records import ResourceKind
from fieldsync.services.webhooks import WebhookVerifier, compute_signature, parse_event

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
BODY = b'{"type": "sms.received", "data": {"id": "s1", "text": "hi"}}'


def _verifier(secret: str | None = "whsec") -> WebhookVerifier:
    return WebhookVerifier(secret, clock=lambda: T0)


def test_valid_signature_with_timestamp_passes() -> None:
    timestamp = str(int(T0.timestamp()) - 60)

    _verifier().verify(
        BODY,
        {"X-Webhook-Timestamp": timestamp, "X-Signature": compute_signature("whsec", BODY, timestamp)},
    )


def test_github_style_prefixed_signature_passes() -> None:
    signature = "sha256=" + compute_signature("whsec", BODY)

    _verifier().verify(BODY, {"X-Hub-Signature-256": signature})


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"X-Signature": "deadbeef"},
        {"X-Signature": compute_signature("other", BODY)},
    ],
)
def test_missing_or_wrong_signature_is_rejected(headers: dict) -> None:
    with pytest.raises(WebhookVerificationError):
        _verifier().verify(BODY, headers)


def test_non_ascii_signature_is_rejected() -> None:
    with pytest.raises(WebhookVerificationError):
        _verifier().verify(BODY, {"X-Signature": "sha256=\u00e9\u00e9"})


def test_tampered_body_is_rejected() -> None:
    signature = compute_signature("whsec", BODY)

    with pytest.raises(WebhookVerificationError):
        _verifier().verify(BODY.replace(b"hi", b"yo"), {"X-Signature": signature})


def test_stale_timestamp_is_rejected() -> None:
    timestamp = str(int(T0.timestamp()) - 301)

    with pytest.raises(WebhookVerificationError):
        _verifier().verify(
            BODY,
            {"X-Webhook-Timestamp": timestamp, "X-Signature": compute_signature("whsec", BODY, timestamp)},
        )


def test_unconfigured_secret_rejects_everything() -> None:
    with pytest.raises(WebhookVerificationError):
        _verifier(secret=None).verify(BODY, {"X-Signature": compute_signature("", BODY)})


@pytest.mark.parametrize(
    "event, kind",
    [
        ({"type": "call.ended", "data": {"call_id": 1}}, ResourceKind.CALL),
        ({"event_type": "voicemail.created", "data": {"id": 1}}, ResourceKind.CALL),
        ({"type": "sms.received", "data": [{"id": 1}]}, ResourceKind.SMS),
        ({"type": "gmail.message", "data": {"id": "m"}}, ResourceKind.EMAIL),
        ({"data": {"id": 1, "duration": 30}}, ResourceKind.CALL),
        ({"data": {"id": 1, "text": "hi"}}, ResourceKind.SMS),
        ({"id": "m", "labelIds": ["INBOX"]}, ResourceKind.EMAIL),
    ],
)
def test_parse_event_detects_resource_kind(event: dict, kind: ResourceKind) -> None:
    parsed_kind, items = parse_event(json.dumps(event).encode("utf-8"))

    assert parsed_kind == kind
    assert len(items) == 1


@pytest.mark.parametrize(
    "raw",
    [b"not json", b"[1, 2]", b'{"data": []}', b'{"data": {"id": 1}}'],
)
def test_parse_event_rejects_unusable_bodies(raw: bytes) -> None:
    with pytest.raises(NormalizationError):
        parse_event(raw)
