"""
Settings Vault

Encrypts per-user expansion settings at rest.
Uses AES-256 in CBC mode with PKCS7 padding and a random 16-byte IV per value.

Storage format of a single encrypted value:
    "<hex iv>:<hex ciphertext>"

KEY DERIVATION:
- The server secret (DATA_ENCRYPTION_KEY, falling back to NEXTAUTH_SECRET) is
  hashed with SHA-256, base64 encoded, and the first 32 characters are used
  as the AES key. Every value shares this key; only the IV differs.

MIGRATION / LEGACY DATA:
- Values that are not in "iv:ciphertext" form are returned unchanged by
  decrypt(). Settings written before encryption was enabled keep working and
  get encrypted on the next write.

DEGRADED MODE:
- If encryption fails (missing or broken key) the plaintext is stored instead
  so that the write is not lost. This is logged as CRITICAL.
"""
import base64
import hashlib
import logging
import os
from typing import Any, Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger(__name__)

IV_LENGTH = 16  # AES block size


def derive_vault_key(secret: str) -> bytes:
    """
    Derive the 32-byte AES key from the server secret.

    Args:
        secret: Server-wide secret string

    Returns:
        32 bytes usable as an AES-256 key
    """
    digest = hashlib.sha256(str(secret).encode('utf-8')).digest()
    return base64.b64encode(digest).decode('ascii')[:32].encode('ascii')


class CredentialVault:
    """
    Symmetric encryption for JSON settings trees.

    Usage:
        vault = CredentialVault(settings.encryption_secret)
        stored = vault.encrypt_object({"core-slack": {"slackToken": "xoxb-..."}})
        plain = vault.decrypt_object(stored)
    """

    def __init__(self, secret: Optional[str]):
        self._key: Optional[bytes] = derive_vault_key(secret) if secret else None
        if self._key is None:
            logger.critical("Vault secret not configured - settings will be stored in plaintext")

    @property
    def is_configured(self) -> bool:
        return self._key is not None

    def encrypt(self, text: Optional[str]) -> Optional[str]:
        """
        Encrypt a single string.

        Returns:
            "iv:ciphertext" hex pair, or the input itself when it is empty or
            encryption fails (plaintext fallback, logged as CRITICAL)
        """
        if not text:
            return text

        try:
            if self._key is None:
                raise ValueError("vault key not configured")

            iv = os.urandom(IV_LENGTH)
            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            padded = padder.update(text.encode('utf-8')) + padder.finalize()

            encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
            encrypted = encryptor.update(padded) + encryptor.finalize()
            return f"{iv.hex()}:{encrypted.hex()}"
        except Exception as e:
            logger.critical(f"ENCRYPTION FAILURE - storing value of length {len(text)} as plaintext: {e}")
            return text

    def decrypt(self, text: Optional[str]) -> Optional[str]:
        """
        Decrypt a single "iv:ciphertext" value.

        Anything that is not a well-formed encrypted value (legacy plaintext,
        foreign key, corruption) is returned unchanged. Never raises.
        """
        if not text:
            return text

        parts = text.split(':')
        if len(parts) != 2:
            # Not encrypted or legacy
            return text

        if self._key is None:
            return text

        try:
            iv = bytes.fromhex(parts[0])
            encrypted = bytes.fromhex(parts[1])
            if len(iv) != IV_LENGTH or not encrypted:
                return text

            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(encrypted) + decryptor.finalize()

            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plain = unpadder.update(padded) + unpadder.finalize()
            return plain.decode('utf-8')
        except (ValueError, UnicodeDecodeError):
            # Likely because it wasn't encrypted
            return text

    def encrypt_object(self, obj: Any) -> Any:
        """Return a copy of a JSON-like tree with every string leaf encrypted."""
        return _walk(obj, self.encrypt)

    def decrypt_object(self, obj: Any) -> Any:
        """Return a copy of a JSON-like tree with every string leaf decrypted."""
        return _walk(obj, self.decrypt)


def _walk(obj: Any, transform) -> Any:
    if isinstance(obj, str):
        return transform(obj)
    if isinstance(obj, dict):
        return {key: _walk(value, transform) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_walk(value, transform) for value in obj]
    # numbers, booleans, None
    return obj


# Global vault instance
_vault: Optional[CredentialVault] = None


def get_vault() -> CredentialVault:
    """
    Get the process-wide vault, keyed from application settings.

    Returns:
        CredentialVault instance
    """
    global _vault
    if _vault is None:
        from backend.core.config import get_settings
        _vault = CredentialVault(get_settings().encryption_secret)
    return _vault


def reset_vault() -> None:
    """Drop the cached vault so the next call re-reads the secret (tests)."""
    global _vault
    _vault = None


def encrypt(text: Optional[str]) -> Optional[str]:
    return get_vault().encrypt(text)


def decrypt(text: Optional[str]) -> Optional[str]:
    return get_vault().decrypt(text)


def encrypt_object(obj: Any) -> Any:
    return get_vault().encrypt_object(obj)


def decrypt_object(obj: Any) -> Any:
    return get_vault().decrypt_object(obj)
