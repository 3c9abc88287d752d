"""Public schema exports."""

from .auth import (
    AuthorizationResult,
    AuthorizationState,
    OAuthCallbackPayload,
    VendorProfile,
)
from .records import (
    UNKNOWN,
    UNKNOWN_TIME,
    CallFilters,
    CallStatus,
    Channel,
    Direction,
    MessageFilters,
    MessageStatus,
    MessageThread,
    NormalizedCallRecord,
    NormalizedMessageRecord,
    ResourceKind,
    SendMessageRequest,
    SendResult,
)

__all__ = [
    "AuthorizationResult",
    "AuthorizationState",
    "CallFilters",
    "CallStatus",
    "Channel",
    "Direction",
    "MessageFilters",
    "MessageStatus",
    "MessageThread",
    "NormalizedCallRecord",
    "NormalizedMessageRecord",
    "OAuthCallbackPayload",
    "ResourceKind",
    "SendMessageRequest",
    "SendResult",
    "UNKNOWN",
    "UNKNOWN_TIME",
    "VendorProfile",
]
