"""Helpers for stripping secrets from payloads before they are logged or surfaced."""

from __future__ import annotations

from typing import Any, Dict, Mapping

SECRET_KEYS = frozenset(
    {
        "access_token",
        "authorization",
        "client_secret",
        "code",
        "password",
        "refresh_token",
        "secret",
        "token",
    }
)
CONTENT_KEYS = frozenset({"body", "text", "raw", "message"})


def redact_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``payload`` safe for operator logs.

    Secrets are masked outright and message content is reduced to its length, while
    addressing fields (``to``, ``from``, ids) are kept for debugging.
    """
    redacted: Dict[str, Any] = {}
    for key, value in payload.items():
        lowered = key.lower()
        if lowered in SECRET_KEYS:
            redacted[key] = "[redacted]"
        elif lowered in CONTENT_KEYS and isinstance(value, str):
            redacted[key] = f"[redacted {len(value)} chars]"
        elif isinstance(value, Mapping):
            redacted[key] = redact_payload(value)
        else:
            redacted[key] = value
    return redacted


__all__ = ["redact_payload"]
