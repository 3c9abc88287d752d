"""
Vendor-agnostic call and message records plus the filters used to list them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN = "unknown"
UNKNOWN_TIME = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Direction(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class CallStatus(str, Enum):
    COMPLETED = "completed"
    MISSED = "missed"
    VOICEMAIL = "voicemail"
    BUSY = "busy"
    FAILED = "failed"
    NO_ANSWER = "no-answer"


class MessageStatus(str, Enum):
    DELIVERED = "delivered"
    PENDING = "pending"
    FAILED = "failed"
    RECEIVED = "received"


class Channel(str, Enum):
    SMS = "sms"
    EMAIL = "email"


class ResourceKind(str, Enum):
    CALL = "call"
    SMS = "sms"
    EMAIL = "email"


class NormalizedCallRecord(BaseModel):
    """A call log entry in the internal shape."""

    model_config = ConfigDict(frozen=True)

    id: str
    provider: str
    direction: Direction
    from_number: str = UNKNOWN
    to_number: str = UNKNOWN
    status: CallStatus
    started_at: datetime = UNKNOWN_TIME
    ended_at: datetime = UNKNOWN_TIME
    duration_seconds: int = 0
    recording_url: str = ""
    voicemail_url: str = ""
    customer_name: str = UNKNOWN
    user_id: str = UNKNOWN
    is_demo: bool = False

    @property
    def dedup_key(self) -> str:
        return f"{self.provider}:{ResourceKind.CALL.value}:{self.id}"


class NormalizedMessageRecord(BaseModel):
    """An SMS or email message in the internal shape."""

    model_config = ConfigDict(frozen=True)

    id: str
    provider: str
    channel: Channel
    direction: Direction
    sender: str = UNKNOWN
    recipient: str = UNKNOWN
    subject: str = ""
    body: str = ""
    sent_at: datetime = UNKNOWN_TIME
    status: MessageStatus
    customer_name: str = UNKNOWN
    thread_id: str = ""
    user_id: str = UNKNOWN
    is_read: bool = True
    is_demo: bool = False

    @property
    def dedup_key(self) -> str:
        return f"{self.provider}:{self.channel.value}:{self.id}"

    @property
    def counterpart(self) -> str:
        """The external party's address for this message."""
        return self.sender if self.direction == Direction.INBOUND else self.recipient


class MessageThread(BaseModel):
    """Messages exchanged with one counterpart, oldest first."""

    counterpart: str
    customer_name: str = UNKNOWN
    messages: List[NormalizedMessageRecord] = Field(default_factory=list)
    last_message: NormalizedMessageRecord
    unread_count: int = 0


class CallFilters(BaseModel):
    """Filters accepted when listing call records."""

    user_id: Optional[str] = None
    department_id: Optional[str] = None
    direction: Optional[Direction] = None
    status: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    limit: int = Field(50, ge=1, le=500)
    max_pages: int = Field(1, ge=1, le=100)


class MessageFilters(BaseModel):
    """Filters accepted when listing messages."""

    user_id: Optional[str] = None
    phone_number: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    query: Optional[str] = Field(
        None, description="Provider search expression (e.g. Gmail's 'in:inbox')."
    )
    limit: int = Field(50, ge=1, le=500)
    max_pages: int = Field(1, ge=1, le=100)


class SendMessageRequest(BaseModel):
    """Outbound message payload accepted by the API."""

    to: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    sender: Optional[str] = Field(None, description="Originating number or address.")
    subject: Optional[str] = Field(None, description="Subject line for email providers.")


class SendResult(BaseModel):
    """Vendor confirmation for an outbound message."""

    id: str
    provider: str


__all__ = [
    "CallFilters",
    "CallStatus",
    "Channel",
    "Direction",
    "MessageFilters",
    "MessageStatus",
    "MessageThread",
    "NormalizedCallRecord",
    "NormalizedMessageRecord",
    "ResourceKind",
    "SendMessageRequest",
    "SendResult",
    "UNKNOWN",
    "UNKNOWN_TIME",
]
