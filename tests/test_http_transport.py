try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import httpx
import pytest

from fieldsync.core.errors import TransientNetworkError
from fieldsync.utils.http import HttpxTransport, RetryConfig


def _transport(handler, attempts: int = 3) -> HttpxTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpxTransport(
        retry_config=RetryConfig(attempts=attempts, backoff_seconds=0),
        client=client,
    )


@pytest.mark.asyncio
async def test_server_errors_are_retried_until_success() -> None:
    seen: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(1)
        if len(seen) < 3:
            return httpx.Response(503, text="unavailable")
        return httpx.Response(200, json={"ok": True})

    response = await _transport(handler).request("GET", "https://vendor.example.com/api")

    assert response.ok
    assert response.json() == {"ok": True}
    assert len(seen) == 3


@pytest.mark.asyncio
async def test_exhausted_retries_raise_transient_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransientNetworkError) as exc_info:
        await _transport(handler, attempts=2).request("GET", "https://vendor.example.com/api?secret=1")

    assert "ConnectError" in exc_info.value.detail
    assert "secret=1" not in str(exc_info.value)


@pytest.mark.asyncio
async def test_client_errors_are_returned_untouched() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"error": "invalid_grant"})

    response = await _transport(handler).request("POST", "https://vendor.example.com/token", data={"a": "b"})

    assert response.status_code == 400
    assert response.json() == {"error": "invalid_grant"}
    assert len(calls) == 1
    assert calls[0].content == b"a=b"


@pytest.mark.asyncio
async def test_retry_disabled_makes_a_single_attempt() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(502)

    with pytest.raises(TransientNetworkError):
        await _transport(handler).request("POST", "https://vendor.example.com/sms", json={}, retry=False)

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_headers_and_params_are_forwarded() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(204)

    response = await _transport(handler).request(
        "GET",
        "https://vendor.example.com/api",
        headers={"Authorization": "Bearer tok"},
        params={"limit": 10},
    )

    assert response.json() == {}
    assert captured[0].headers["Authorization"] == "Bearer tok"
    assert captured[0].url.params["limit"] == "10"
