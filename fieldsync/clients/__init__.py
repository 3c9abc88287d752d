"""Expose constructed client wrappers."""

from .dialpad import DialpadClient
from .gmail import GmailClient
from .oauth import OAuthClient, OAuthProviderConfig
from .sqlite_store import SQLiteStore
from .state_codec import NonceRegistry, StateCodec
from .vendor import VendorClient

__all__ = [
    "DialpadClient",
    "GmailClient",
    "NonceRegistry",
    "OAuthClient",
    "OAuthProviderConfig",
    "SQLiteStore",
    "StateCodec",
    "VendorClient",
]
