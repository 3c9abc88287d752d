"""Service layer exports."""

from .integration import IntegrationFacade
from .normalizer import ResourceNormalizer, build_threads
from .sync import SyncPipeline, SyncReport, SyncTrigger
from .token_cipher import TokenCipherService
from .token_store import TokenStore
from .webhooks import WebhookVerifier

__all__ = [
    "IntegrationFacade",
    "ResourceNormalizer",
    "SyncPipeline",
    "SyncReport",
    "SyncTrigger",
    "TokenCipherService",
    "TokenStore",
    "WebhookVerifier",
    "build_threads",
]
