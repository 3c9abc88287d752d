try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import base64
import warnings
from datetime import datetime, timezone

import pytest

from fieldsync.core.errors import NormalizationError, NormalizationWarning
from fieldsync.schemas.records import (
    UNKNOWN,
    UNKNOWN_TIME,
    CallStatus,
    Channel,
    Direction,
    MessageStatus,
    ResourceKind,
)
from fieldsync.services.normalizer import ResourceNormalizer, build_threads, parse_timestamp


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


DIALPAD_CALL = {
    "id": "5001",
    "direction": "inbound",
    "from": {"number": "+15550001111"},
    "to": {"number": "+15559990000"},
    "state": "no_answer",
    "start_time": "2024-05-01T12:00:00Z",
    "end_time": 1714565100000,
    "duration": 42,
    "recording_url": ["https://dialpad.example/rec/1.mp3"],
    "contact": {"name": "John Smith"},
    "user_id": 1001,
}

DIALPAD_SMS = {
    "id": "sms-9",
    "direction": "outbound",
    "from": "+15559990000",
    "to": ["+15550001111"],
    "text": "On our way!",
    "date_created": "1714564800",
    "state": "sent",
}

GMAIL_MESSAGE = {
    "id": "18f0a",
    "threadId": "18f00",
    "labelIds": ["INBOX", "UNREAD"],
    "internalDate": "1714564800000",
    "payload": {
        "mimeType": "multipart/mixed",
        "headers": [
            {"name": "From", "value": "Sarah Johnson <sarah@example.com>"},
            {"name": "To", "value": "office@example.com"},
            {"name": "Subject", "value": "Furnace quote"},
            {"name": "Date", "value": "Wed, 01 May 2024 12:00:00 +0000"},
        ],
        "parts": [
            {
                "mimeType": "multipart/alternative",
                "parts": [
                    {"mimeType": "text/plain", "body": {"data": _b64("plain body")}},
                    {"mimeType": "text/html", "body": {"data": _b64("<p>html body ✓</p>")}},
                ],
            },
            {"mimeType": "application/pdf", "filename": "quote.pdf", "body": {"attachmentId": "a1"}},
        ],
    },
}


def test_call_normalization_is_idempotent() -> None:
    normalizer = ResourceNormalizer("dialpad")

    first = normalizer.normalize_call(DIALPAD_CALL)
    second = normalizer.normalize_call(DIALPAD_CALL)

    assert first.model_dump_json() == second.model_dump_json()


def test_message_normalization_is_idempotent_even_with_missing_fields() -> None:
    normalizer = ResourceNormalizer("dialpad")
    sparse = {"id": "sms-1", "direction": "inbound"}

    assert (
        normalizer.normalize_message(sparse).model_dump_json()
        == normalizer.normalize_message(sparse).model_dump_json()
    )


def test_dialpad_call_fields() -> None:
    record = ResourceNormalizer("dialpad").normalize_call(DIALPAD_CALL)

    assert record.id == "5001"
    assert record.direction == Direction.INBOUND
    assert record.from_number == "+15550001111"
    assert record.to_number == "+15559990000"
    assert record.status == CallStatus.NO_ANSWER
    assert record.started_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert record.ended_at == datetime(2024, 5, 1, 12, 5, tzinfo=timezone.utc)
    assert record.duration_seconds == 42
    assert record.recording_url == "https://dialpad.example/rec/1.mp3"
    assert record.voicemail_url == ""
    assert record.customer_name == "John Smith"
    assert record.user_id == "1001"
    assert record.dedup_key == "dialpad:call:5001"


@pytest.mark.parametrize(
    "vendor_state, expected",
    [
        ("completed", CallStatus.COMPLETED),
        ("missed", CallStatus.MISSED),
        ("voicemail", CallStatus.VOICEMAIL),
        ("busy", CallStatus.BUSY),
        ("failed", CallStatus.FAILED),
        ("no_answer", CallStatus.NO_ANSWER),
        ("HANGUP", CallStatus.COMPLETED),
    ],
)
def test_call_status_table(vendor_state: str, expected: CallStatus) -> None:
    with warnings.catch_warnings():
        warnings.simplefilter("error", NormalizationWarning)
        record = ResourceNormalizer("dialpad").normalize_call({**DIALPAD_CALL, "state": vendor_state})

    assert record.status == expected


def test_unmapped_call_status_falls_back_to_failed_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    payload = {**DIALPAD_CALL, "state": "unknown_vendor_status"}

    with pytest.warns(NormalizationWarning, match="unknown_vendor_status"):
        record = ResourceNormalizer("dialpad").normalize_call(payload)

    assert record.status == CallStatus.FAILED
    assert "unknown_vendor_status" in caplog.text


def test_missing_optional_call_fields_become_sentinels() -> None:
    with pytest.warns(NormalizationWarning):
        record = ResourceNormalizer("dialpad").normalize_call({"call_id": 77})

    assert record.id == "77"
    assert record.direction == Direction.INBOUND
    assert record.from_number == UNKNOWN
    assert record.to_number == UNKNOWN
    assert record.customer_name == UNKNOWN
    assert record.started_at == UNKNOWN_TIME
    assert record.ended_at == UNKNOWN_TIME
    assert record.duration_seconds == 0
    assert record.recording_url == ""
    assert record.status == CallStatus.FAILED


def test_record_without_vendor_id_cannot_be_normalized() -> None:
    with pytest.raises(NormalizationError):
        ResourceNormalizer("dialpad").normalize_call({"direction": "inbound", "state": "completed"})


def test_sms_fields_and_status_mapping() -> None:
    record = ResourceNormalizer("dialpad").normalize_message(DIALPAD_SMS)

    assert record.channel == Channel.SMS
    assert record.direction == Direction.OUTBOUND
    assert record.sender == "+15559990000"
    assert record.recipient == "+15550001111"
    assert record.body == "On our way!"
    assert record.sent_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert record.status == MessageStatus.DELIVERED
    assert record.counterpart == "+15550001111"
    assert record.is_read is True


def test_sms_without_state_is_delivered() -> None:
    payload = {key: value for key, value in DIALPAD_SMS.items() if key != "state"}

    assert ResourceNormalizer("dialpad").normalize_message(payload).status == MessageStatus.DELIVERED


def test_unmapped_sms_status_is_failed_with_warning() -> None:
    with pytest.warns(NormalizationWarning):
        record = ResourceNormalizer("dialpad").normalize_message({**DIALPAD_SMS, "state": "carrier_blocked"})

    assert record.status == MessageStatus.FAILED


def test_email_prefers_html_part_depth_first() -> None:
    record = ResourceNormalizer("gmail").normalize_email(GMAIL_MESSAGE)

    assert record.body == "<p>html body ✓</p>"
    assert record.channel == Channel.EMAIL
    assert record.direction == Direction.INBOUND
    assert record.status == MessageStatus.RECEIVED
    assert record.sender == "Sarah Johnson <sarah@example.com>"
    assert record.recipient == "office@example.com"
    assert record.subject == "Furnace quote"
    assert record.customer_name == "Sarah Johnson"
    assert record.thread_id == "18f00"
    assert record.is_read is False
    assert record.sent_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert record.dedup_key == "gmail:email:18f0a"


def test_email_falls_back_to_plain_text_then_single_part_body() -> None:
    plain_only = {
        "id": "m1",
        "labelIds": ["SENT"],
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [{"name": "to", "value": "Mike <mike@example.com>"}],
            "parts": [{"mimeType": "text/plain", "body": {"data": _b64("just text")}}],
        },
    }
    single_part = {
        "id": "m2",
        "labelIds": ["INBOX"],
        "payload": {"mimeType": "text/plain", "headers": [], "body": {"data": _b64("single")}},
    }
    normalizer = ResourceNormalizer("gmail")

    with pytest.warns(NormalizationWarning):
        sent = normalizer.normalize_email(plain_only)
    assert sent.body == "just text"
    assert sent.direction == Direction.OUTBOUND
    assert sent.status == MessageStatus.DELIVERED
    assert sent.customer_name == "Mike"
    assert sent.is_read is True

    with pytest.warns(NormalizationWarning):
        received = normalizer.normalize_email(single_part)
    assert received.body == "single"
    assert received.sender == UNKNOWN
    assert received.sent_at == UNKNOWN_TIME


def test_draft_email_is_pending() -> None:
    draft = {**GMAIL_MESSAGE, "labelIds": ["DRAFT"]}

    assert ResourceNormalizer("gmail").normalize_email(draft).status == MessageStatus.PENDING


def test_normalize_dispatches_by_kind() -> None:
    normalizer = ResourceNormalizer("dialpad")

    assert normalizer.normalize(ResourceKind.CALL, DIALPAD_CALL).id == "5001"
    assert normalizer.normalize(ResourceKind.SMS, DIALPAD_SMS).id == "sms-9"


@pytest.mark.parametrize(
    "value, expected",
    [
        (1714564800, datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)),
        (1714564800000, datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)),
        ("1714564800000", datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)),
        ("2024-05-01T12:00:00Z", datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)),
        ("2024-05-01T12:00:00", datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)),
        ("Wed, 01 May 2024 14:00:00 +0200", datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)),
        ("not a date", None),
        (None, None),
        ("", None),
    ],
)
def test_parse_timestamp(value, expected) -> None:
    assert parse_timestamp(value) == expected


def test_build_threads_groups_by_counterpart() -> None:
    normalizer = ResourceNormalizer("dialpad")
    messages = [
        normalizer.normalize_message(
            {"id": "1", "direction": "inbound", "from": "+1111", "to": "+9999",
             "text": "Hi", "date_created": "2024-05-01T10:00:00Z"}
        ),
        normalizer.normalize_message(
            {"id": "2", "direction": "outbound", "from": "+9999", "to": "+1111",
             "text": "Hello", "date_created": "2024-05-01T10:05:00Z"}
        ),
        normalizer.normalize_message(
            {"id": "3", "direction": "inbound", "from": "+2222", "to": "+9999",
             "text": "Quote?", "date_created": "2024-05-01T11:00:00Z",
             "contact": {"name": "Sarah Johnson"}}
        ),
        normalizer.normalize_message(
            {"id": "4", "direction": "inbound", "from": "+1111", "to": "+9999",
             "text": "Thanks", "date_created": "2024-05-01T09:00:00Z"}
        ),
    ]

    threads = build_threads(messages)

    assert [thread.counterpart for thread in threads] == ["+2222", "+1111"]
    first_contact = threads[1]
    assert [message.id for message in first_contact.messages] == ["4", "1", "2"]
    assert first_contact.last_message.id == "2"
    assert first_contact.unread_count == 2
    assert threads[0].customer_name == "Sarah Johnson"
    assert threads[0].unread_count == 1
