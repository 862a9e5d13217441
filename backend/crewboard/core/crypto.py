"""AES-256-GCM string encryption for stored provider credentials.

Ciphertext format: three colon-joined base64 segments, ``iv:authTag:ciphertext``.
The 32-byte key is the SHA-256 digest of the configured ``ENCRYPTION_KEY``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from crewboard.core.config import settings

IV_LENGTH = 12
AUTH_TAG_LENGTH = 16


class EncryptionError(Exception):
    """Raised when a payload cannot be encrypted or decrypted."""


def _encryption_key(secret: str | None = None) -> bytes:
    value = settings.encryption_key if secret is None else secret
    if not value:
        raise EncryptionError("ENCRYPTION_KEY is not configured")
    return hashlib.sha256(value.encode("utf-8")).digest()


def encrypt_string(plain_text: str, *, secret: str | None = None) -> str:
    """Encrypt text into the ``iv:authTag:ciphertext`` envelope."""
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(_encryption_key(secret)).encrypt(iv, plain_text.encode("utf-8"), None)
    # AESGCM appends the tag to the ciphertext; the envelope stores it separately.
    ciphertext, auth_tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
    return ":".join(
        base64.b64encode(part).decode("ascii") for part in (iv, auth_tag, ciphertext)
    )


def decrypt_string(cipher_text: str, *, secret: str | None = None) -> str:
    """Decrypt an ``iv:authTag:ciphertext`` envelope back to text."""
    parts = cipher_text.split(":")
    if len(parts) != 3 or not parts[0] or not parts[1]:
        raise EncryptionError("Invalid encrypted payload")

    try:
        iv, auth_tag, ciphertext = (base64.b64decode(part, validate=True) for part in parts)
    except (binascii.Error, ValueError) as exc:
        raise EncryptionError("Invalid encrypted payload encoding") from exc
    if len(iv) != IV_LENGTH or len(auth_tag) != AUTH_TAG_LENGTH:
        raise EncryptionError("Invalid encrypted payload header")

    try:
        plain = AESGCM(_encryption_key(secret)).decrypt(iv, ciphertext + auth_tag, None)
    except InvalidTag as exc:
        raise EncryptionError("Encrypted payload failed authentication") from exc
    return plain.decode("utf-8")
