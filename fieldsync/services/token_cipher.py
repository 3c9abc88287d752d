"""Symmetric encryption utilities for protecting stored vendor tokens."""

from __future__ import annotations

import base64
import hashlib
from typing import Iterable

from cryptography.fernet import Fernet, InvalidToken, MultiFernet


def _derive_fernet(secret: str) -> Fernet:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


class TokenCipherService:
    """Encrypt and decrypt sensitive strings using derived Fernet keys.

    The first secret encrypts; retired secrets passed as ``previous_secrets`` are
    still accepted for decryption so keys can be rotated without a migration.
    """

    def __init__(self, *, secret: str, previous_secrets: Iterable[str] = ()) -> None:
        if not secret:
            raise ValueError("Token encryption secret must be provided.")
        self._primary = _derive_fernet(secret)
        self._fernet = MultiFernet(
            [self._primary, *(_derive_fernet(old) for old in previous_secrets if old)]
        )

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext string and return the ciphertext."""
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a ciphertext string and return the plaintext."""
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise ValueError("Failed to decrypt token; invalid ciphertext provided.") from exc
        return plaintext.decode("utf-8")

    def needs_rotation(self, ciphertext: str) -> bool:
        """True when ``ciphertext`` was produced with a retired key."""
        try:
            self._primary.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken:
            return True
        return False

    def rotate(self, ciphertext: str) -> str:
        """Re-encrypt ``ciphertext`` under the current key."""
        try:
            return self._fernet.rotate(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("Failed to rotate token; invalid ciphertext provided.") from exc


__all__ = ["TokenCipherService"]
