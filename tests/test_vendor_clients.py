try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import base64
import json
from email import message_from_bytes
from typing import Any

import pytest

from fieldsync.clients.dialpad import DialpadClient
from fieldsync.clients.gmail import GmailClient, build_search_query
from fieldsync.core.config import DialpadSettings, GmailSettings
from fieldsync.core.errors import (
    SendFailed,
    TransientNetworkError,
    UnsupportedOperation,
    VendorAuthError,
    VendorRequestError,
)
from fieldsync.models.oauth import TenantCredential
from fieldsync.schemas.records import (
    CallFilters,
    Direction,
    MessageFilters,
    ResourceKind,
    SendMessageRequest,
)
from fieldsync.utils.http import TransportResponse

CREDENTIAL = TenantCredential(access_token="tok", refresh_token="ref")


class RecordingTransport:
    def __init__(self, *answers: Any) -> None:
        self.answers = list(answers)
        self.calls: list[tuple[str, str, dict]] = []

    async def request(self, method: str, url: str, **kwargs: Any) -> TransportResponse:
        self.calls.append((method, url, kwargs))
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        status_code, payload = answer
        return TransportResponse(status_code=status_code, text=json.dumps(payload))


def _dialpad(transport: RecordingTransport, environment: str = "sandbox") -> DialpadClient:
    settings = DialpadSettings(
        client_id="client", client_secret="secret", redirect_uri="https://app.example.com/cb",
        environment=environment,
    )
    return DialpadClient(settings, transport)


def _gmail(transport: RecordingTransport) -> GmailClient:
    settings = GmailSettings(client_id="client", client_secret="secret", redirect_uri="https://app.example.com/cb")
    return GmailClient(settings, transport)


@pytest.mark.parametrize(
    "environment, base_url",
    [
        ("sandbox", "https://sandbox.dialpad.com"),
        ("beta", "https://dialpadbeta.com"),
        ("production", "https://dialpad.com"),
    ],
)
def test_dialpad_endpoints_follow_environment(environment: str, base_url: str) -> None:
    config = _dialpad(RecordingTransport(), environment).oauth_config

    assert config.authorize_url == f"{base_url}/oauth2/authorize"
    assert config.token_url == f"{base_url}/oauth2/token"
    assert config.revoke_url == f"{base_url}/oauth2/deauthorize"
    assert config.revoke_style == "bearer"


def test_capabilities() -> None:
    dialpad = _dialpad(RecordingTransport())
    gmail = _gmail(RecordingTransport())

    assert dialpad.supports(ResourceKind.CALL) and dialpad.supports(ResourceKind.SMS)
    assert not dialpad.supports(ResourceKind.EMAIL)
    assert gmail.supports(ResourceKind.EMAIL)
    assert not gmail.supports(ResourceKind.CALL)


@pytest.mark.asyncio
async def test_dialpad_fetch_calls_sends_filters_and_returns_cursor() -> None:
    transport = RecordingTransport((200, {"items": [{"id": "c1"}], "cursor": "abc"}))
    filters = CallFilters(user_id="1001", direction=Direction.INBOUND, start_date="2024-05-01", limit=25)

    items, cursor = await _dialpad(transport).fetch_calls(CREDENTIAL, filters, "prev")

    method, url, kwargs = transport.calls[0]
    assert (method, url) == ("GET", "https://sandbox.dialpad.com/api/v2/calls")
    assert kwargs["params"] == {
        "user_id": "1001",
        "direction": "inbound",
        "start_date": "2024-05-01",
        "limit": 25,
        "cursor": "prev",
    }
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    assert items == [{"id": "c1"}]
    assert cursor == "abc"


@pytest.mark.asyncio
async def test_dialpad_last_page_has_no_cursor() -> None:
    transport = RecordingTransport((200, {"items": []}))

    items, cursor = await _dialpad(transport).fetch_messages(CREDENTIAL, MessageFilters(), None)

    assert items == []
    assert cursor is None


@pytest.mark.asyncio
async def test_dialpad_profile() -> None:
    transport = RecordingTransport(
        (200, {"id": 7, "first_name": "Pat", "last_name": "Lee", "emails": ["pat@example.com"]})
    )

    profile = await _dialpad(transport).fetch_profile(CREDENTIAL)

    assert profile.id == "7"
    assert profile.email == "pat@example.com"
    assert profile.display_name == "Pat Lee"


@pytest.mark.asyncio
async def test_api_401_is_an_auth_error_and_other_failures_are_request_errors() -> None:
    transport = RecordingTransport((401, {"error": "expired"}), (404, {"error": "missing"}))
    client = _dialpad(transport)

    with pytest.raises(VendorAuthError):
        await client.fetch_calls(CREDENTIAL, CallFilters(), None)
    with pytest.raises(VendorRequestError) as exc_info:
        await client.fetch_calls(CREDENTIAL, CallFilters(), None)

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_dialpad_send_network_failure_is_send_failed_without_content() -> None:
    transport = RecordingTransport(TransientNetworkError("down", detail="ConnectError"))

    with pytest.raises(SendFailed) as exc_info:
        await _dialpad(transport).send_message(CREDENTIAL, SendMessageRequest(to="+1555", body="secret plan"))

    assert exc_info.value.payload == {"to": "+1555", "text": "[redacted 11 chars]"}
    assert transport.calls[0][2]["retry"] is False


@pytest.mark.asyncio
async def test_dialpad_send_without_confirmation_id_fails() -> None:
    transport = RecordingTransport((200, {}))

    with pytest.raises(SendFailed):
        await _dialpad(transport).send_message(CREDENTIAL, SendMessageRequest(to="+1555", body="hi"))


@pytest.mark.asyncio
async def test_dialpad_send_401_can_be_retried_by_caller() -> None:
    transport = RecordingTransport((401, {"error": "expired"}))

    with pytest.raises(VendorAuthError):
        await _dialpad(transport).send_message(CREDENTIAL, SendMessageRequest(to="+1555", body="hi"))


def test_gmail_oauth_requests_offline_access() -> None:
    config = _gmail(RecordingTransport()).oauth_config

    assert config.extra_authorize_params["access_type"] == "offline"
    assert config.extra_authorize_params["prompt"] == "consent"
    assert config.revoke_style == "form"
    assert "https://www.googleapis.com/auth/gmail.readonly" in config.scopes


def test_gmail_search_query() -> None:
    assert build_search_query(MessageFilters()) == "in:inbox"
    filters = MessageFilters(
        query="label:customers", phone_number="+15550001111", start_date="2024-05-01", end_date="2024-05-31T00:00:00"
    )
    assert build_search_query(filters) == 'label:customers "+15550001111" after:2024/05/01 before:2024/05/31'


@pytest.mark.asyncio
async def test_gmail_fetch_messages_loads_each_full_message() -> None:
    transport = RecordingTransport(
        (200, {"messages": [{"id": "m1"}, {"id": "m2"}], "nextPageToken": "page-2"}),
        (200, {"id": "m1", "payload": {}}),
        (200, {"id": "m2", "payload": {}}),
    )

    items, cursor = await _gmail(transport).fetch_messages(CREDENTIAL, MessageFilters(limit=2), None)

    assert [item["id"] for item in items] == ["m1", "m2"]
    assert cursor == "page-2"
    _, list_url, list_kwargs = transport.calls[0]
    assert list_url == "https://gmail.googleapis.com/gmail/v1/users/me/messages"
    assert list_kwargs["params"] == {"q": "in:inbox", "maxResults": 2}
    assert transport.calls[1][1].endswith("/messages/m1")
    assert transport.calls[1][2]["params"] == {"format": "full"}


@pytest.mark.asyncio
async def test_gmail_send_posts_raw_rfc822_message() -> None:
    transport = RecordingTransport((200, {"id": "sent-1"}))
    request = SendMessageRequest(to="customer@example.com", body="See you at 3pm", subject="Appointment")

    result = await _gmail(transport).send_message(CREDENTIAL, request)

    assert result.id == "sent-1"
    raw = transport.calls[0][2]["json"]["raw"]
    message = message_from_bytes(base64.urlsafe_b64decode(raw))
    assert message["To"] == "customer@example.com"
    assert message["Subject"] == "Appointment"
    assert "See you at 3pm" in message.get_payload()


@pytest.mark.asyncio
async def test_gmail_does_not_list_calls() -> None:
    with pytest.raises(UnsupportedOperation):
        await _gmail(RecordingTransport()).fetch_calls(CREDENTIAL, CallFilters(), None)
