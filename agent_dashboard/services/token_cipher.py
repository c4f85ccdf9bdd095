"""Symmetric encryption for OAuth tokens at rest."""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken


class TokenDecryptionError(ValueError):
    """Raised when a stored ciphertext cannot be decrypted with the current key."""


class TokenCipherService:
    """Encrypt and decrypt token strings using a Fernet key derived from a secret."""

    def __init__(self, *, secret: str) -> None:
        if not secret:
            raise ValueError("Token encryption secret must be provided.")
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def encrypt_optional(self, plaintext: str | None) -> str | None:
        return self.encrypt(plaintext) if plaintext else None

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a ciphertext; a rotated secret or corrupted row raises."""
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise TokenDecryptionError(
                "Failed to decrypt token; invalid ciphertext or rotated secret."
            ) from exc
        return plaintext.decode("utf-8")


__all__ = ["TokenCipherService", "TokenDecryptionError"]
