"""AES-GCM helpers for the stored IMAP credential.

The key is the shared secret's UTF-8 bytes, space-padded or truncated to
32 bytes (AES-256). Ciphertext and IV are stored base64-encoded.
"""

from __future__ import annotations

import base64
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

IV_BYTES = 12


class DecryptionError(ValueError):
    """The credential blob could not be decrypted with the configured secret."""


def _derive_key(secret: str) -> bytes:
    return secret.ljust(32)[:32].encode("utf-8")[:32]


def encrypt(plaintext: str, secret: str) -> tuple[str, str]:
    """Encrypt *plaintext* and return ``(ciphertext_b64, iv_b64)``."""
    iv = os.urandom(IV_BYTES)
    ciphertext = AESGCM(_derive_key(secret)).encrypt(iv, plaintext.encode("utf-8"), None)
    return base64.b64encode(ciphertext).decode("ascii"), base64.b64encode(iv).decode("ascii")


def decrypt(ciphertext_b64: str, iv_b64: str, secret: str) -> str:
    """Decrypt a base64 AES-GCM blob produced by :func:`encrypt`."""
    try:
        iv = base64.b64decode(iv_b64)
        ciphertext = base64.b64decode(ciphertext_b64)
        plaintext = AESGCM(_derive_key(secret)).decrypt(iv, ciphertext, None)
    except (InvalidTag, ValueError, TypeError) as exc:
        raise DecryptionError("Failed to decrypt IMAP credential") from exc
    return plaintext.decode("utf-8")
