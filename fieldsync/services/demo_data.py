"""Synthetic call, SMS and email records shown to tenants that have not connected yet."""

from __future__ import annotations

import base64
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fieldsync.schemas.records import NormalizedCallRecord, NormalizedMessageRecord
from fieldsync.services.normalizer import ResourceNormalizer

_OFFICE_NUMBER = "+1987654321"


def _demo_call_payloads(now: datetime) -> List[Dict[str, Any]]:
    return [
        {
            "id": "demo-call-1",
            "direction": "inbound",
            "from": {"number": "+1234567890"},
            "to": {"number": _OFFICE_NUMBER},
            "state": "completed",
            "start_time": (now - timedelta(hours=1)).isoformat(),
            "duration": 180,
            "contact": {"name": "John Smith"},
            "user_id": "1001",
        },
        {
            "id": "demo-call-2",
            "direction": "inbound",
            "from": {"number": "+1555123456"},
            "to": {"number": _OFFICE_NUMBER},
            "state": "missed",
            "start_time": (now - timedelta(hours=2)).isoformat(),
            "duration": 0,
            "contact": {"name": "Sarah Johnson"},
            "user_id": "1002",
        },
        {
            "id": "demo-call-3",
            "direction": "outbound",
            "from": {"number": _OFFICE_NUMBER},
            "to": {"number": "+1444555666"},
            "state": "voicemail",
            "start_time": (now - timedelta(hours=3)).isoformat(),
            "duration": 45,
            "voicemail_url": "https://example.com/voicemail.mp3",
            "contact": {"name": "Mike Wilson"},
            "user_id": "1001",
        },
    ]


def _demo_sms_payloads(now: datetime) -> List[Dict[str, Any]]:
    return [
        {
            "id": "demo-sms-1",
            "direction": "inbound",
            "from": "+1234567890",
            "to": _OFFICE_NUMBER,
            "text": "Hi, I need help with my HVAC system",
            "date_created": (now - timedelta(minutes=60)).isoformat(),
            "state": "delivered",
            "contact": {"name": "John Smith"},
            "user_id": "1001",
            "is_read": True,
        },
        {
            "id": "demo-sms-2",
            "direction": "outbound",
            "from": _OFFICE_NUMBER,
            "to": "+1234567890",
            "text": "Hello! I can help you with that. What seems to be the issue?",
            "date_created": (now - timedelta(minutes=55)).isoformat(),
            "state": "delivered",
            "contact": {"name": "John Smith"},
            "user_id": "1001",
        },
    ]


def _encode_body(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def _demo_email_payloads(now: datetime) -> List[Dict[str, Any]]:
    return [
        {
            "id": "demo-email-1",
            "threadId": "demo-thread-1",
            "labelIds": ["INBOX", "UNREAD"],
            "internalDate": str(int((now - timedelta(hours=4)).timestamp() * 1000)),
            "payload": {
                "mimeType": "multipart/alternative",
                "headers": [
                    {"name": "From", "value": "Sarah Johnson <sarah@example.com>"},
                    {"name": "To", "value": "office@example.com"},
                    {"name": "Subject", "value": "Quote for furnace replacement"},
                ],
                "parts": [
                    {
                        "mimeType": "text/plain",
                        "body": {"data": _encode_body("Could you send over a quote for a new furnace?")},
                    },
                    {
                        "mimeType": "text/html",
                        "body": {
                            "data": _encode_body("<p>Could you send over a quote for a new furnace?</p>")
                        },
                    },
                ],
            },
        },
    ]


def demo_calls(provider: str, *, now: datetime, user_id: Optional[str] = None) -> List[NormalizedCallRecord]:
    normalizer = ResourceNormalizer(provider)
    records = [
        normalizer.normalize_call(payload).model_copy(update={"is_demo": True})
        for payload in _demo_call_payloads(now)
    ]
    if user_id:
        records = [record for record in records if record.user_id == user_id]
    return records


def demo_messages(provider: str, *, now: datetime, user_id: Optional[str] = None) -> List[NormalizedMessageRecord]:
    normalizer = ResourceNormalizer(provider)
    records = [
        normalizer.normalize_message(payload).model_copy(update={"is_demo": True})
        for payload in _demo_sms_payloads(now)
    ]
    if user_id:
        records = [record for record in records if record.user_id == user_id]
    return records


def demo_emails(provider: str, *, now: datetime) -> List[NormalizedMessageRecord]:
    normalizer = ResourceNormalizer(provider)
    return [
        normalizer.normalize_email(payload).model_copy(update={"is_demo": True})
        for payload in _demo_email_payloads(now)
    ]


__all__ = ["demo_calls", "demo_emails", "demo_messages"]
