"""
Encryption for settings at rest and for the local secure sync cache.
"""

from backend.core.security.vault import (
    CredentialVault,
    get_vault,
    encrypt,
    decrypt,
    encrypt_object,
    decrypt_object,
)
from backend.core.security.secure_cache import (
    SecureCache,
    SecureSync,
    MemoryStore,
    JsonFileStore,
    get_secure_cache,
)

__all__ = [
    # Vault
    "CredentialVault",
    "get_vault",
    "encrypt",
    "decrypt",
    "encrypt_object",
    "decrypt_object",
    # Secure sync
    "SecureCache",
    "SecureSync",
    "MemoryStore",
    "JsonFileStore",
    "get_secure_cache",
]
