"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from fieldsync import dependencies


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_cached_dependencies():
    """Drop cached settings, stores and facades so tests never share vendor state."""
    yield
    for factory in (
        dependencies.build_integration_facade,
        dependencies.get_nonce_registry,
        dependencies.get_state_codec,
        dependencies.get_token_cipher_service,
        dependencies.get_sqlite_store,
        dependencies.get_app_settings,
    ):
        factory.cache_clear()
