"""HTTP transport with bounded timeouts and retry/backoff semantics."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import httpx

from fieldsync.core.errors import TransientNetworkError

logger = logging.getLogger(__name__)


class RetryConfig:
    def __init__(self, *, attempts: int = 3, backoff_seconds: float = 1.0) -> None:
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds


@dataclass
class TransportResponse:
    """Minimal response envelope handed back to the OAuth and vendor clients."""

    status_code: int
    text: str = ""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        if not self.text:
            return {}
        return json.loads(self.text)


class HttpxTransport:
    """Issue vendor HTTP calls through a shared ``httpx.AsyncClient``.

    Timeouts, connection failures and 5xx answers are retried with linear backoff
    when ``retry`` is true; once attempts are exhausted a ``TransientNetworkError``
    is raised. Any other status is returned to the caller untouched, so 4xx
    handling stays with the client that understands the vendor.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 15.0,
        retry_config: RetryConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._retry = retry_config or RetryConfig()
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, Any]] = None,
        data: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        retry: bool = True,
    ) -> TransportResponse:
        attempts = self._retry.attempts if retry else 1
        last_error: str = "no attempt made"

        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.request(
                    method,
                    url,
                    headers=dict(headers or {}),
                    params=params,
                    data=data,
                    json=json,
                )
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_error = f"{type(exc).__name__}: {exc}"
            else:
                if response.status_code < 500:
                    return TransportResponse(
                        status_code=response.status_code,
                        text=response.text,
                        headers=dict(response.headers),
                    )
                last_error = f"HTTP {response.status_code}: {response.text[:200]}"

            if attempt < attempts:
                logger.warning(
                    "%s %s failed (attempt %s/%s): %s",
                    method,
                    _strip_query(url),
                    attempt,
                    attempts,
                    last_error,
                )
                await asyncio.sleep(self._retry.backoff_seconds * attempt)

        raise TransientNetworkError(
            f"{method} {_strip_query(url)} failed after {attempts} attempt(s).",
            detail=last_error,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def _strip_query(url: str) -> str:
    return url.split("?", 1)[0]


__all__ = ["HttpxTransport", "RetryConfig", "TransportResponse"]
