"""
Secure Sync Cache

Epoch-rotating encrypted key/value store used to mirror sensitive per-user
configuration (mail groups, tokens) into fast local reads.

Entry format:
    "<epoch>:<base64 nonce>:<base64 AES-GCM ciphertext>"

EPOCHS:
- epoch = floor(now_ms / epoch_ms), 5 minutes by default.
- The AES-256-GCM key is derived from (user_id, epoch), so an entry is only
  readable while its epoch is the current one or the one just before it.
- There is no TTL field and no cleanup sweep: once two epochs have passed the
  entry is treated as expired and its key is never derived again.

KEY DERIVATION:
- PBKDF2-HMAC-SHA256 with a fixed salt and a low iteration count. This keeps
  rotation cheap; the threat model is casual local inspection of the store,
  not an attacker with CPU time. See DESIGN.md before hardening it.

Concurrent writers to the same key are last-write-wins.
"""
import base64
import binascii
import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

EPOCH_LENGTH_MS = 300000  # 5 minutes
PBKDF2_ITERATIONS = 1000
PBKDF2_SALT = b"BLOOMX-SALT"
NONCE_LENGTH = 12


class KeyValueStore(Protocol):
    """Local persistent storage the cache writes through to."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStore:
    """In-process store. Lost on restart."""

    def __init__(self):
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStore:
    """
    Store backed by a single JSON object on disk.

    The file is re-read on every access so that separate processes see each
    other's writes; there is no locking between processes.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding='utf-8') as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Secure cache file unreadable, starting empty: {e}")
            return {}

    def _save(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f)
        os.replace(tmp_path, self.path)

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if data.pop(key, None) is not None:
                self._save(data)


class SecureCache:
    """
    Encrypted, epoch-rotating cache.

    Args:
        store: Backing key/value store
        epoch_ms: Epoch width in milliseconds
        iterations: PBKDF2 iteration count
        clock: Returns current time in seconds (injectable for tests)
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        epoch_ms: int = EPOCH_LENGTH_MS,
        iterations: int = PBKDF2_ITERATIONS,
        clock: Callable[[], float] = time.time,
    ):
        if epoch_ms <= 0:
            raise ValueError("epoch_ms must be positive")
        self.store = store if store is not None else MemoryStore()
        self.epoch_ms = epoch_ms
        self.iterations = iterations
        self.clock = clock

    def current_epoch(self) -> int:
        return int(self.clock() * 1000) // self.epoch_ms

    def derive_key(self, user_id: str, epoch: int) -> bytes:
        """
        Derive the AES-256-GCM key for a user and epoch.

        Args:
            user_id: Owner of the cached data
            epoch: Epoch number the key belongs to

        Returns:
            32-byte key
        """
        secret = f"{user_id}-BLOOMX-SECURE-SYNC-{epoch}".encode('utf-8')
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=PBKDF2_SALT,
            iterations=self.iterations,
        )
        return kdf.derive(secret)

    def write(self, key: str, value: Any, user_id: str) -> None:
        """
        Encrypt a JSON-serializable value under the current epoch and store it.

        Raises:
            TypeError: If value is not JSON-serializable
        """
        epoch = self.current_epoch()
        nonce = os.urandom(NONCE_LENGTH)
        data = json.dumps(value).encode('utf-8')

        encrypted = AESGCM(self.derive_key(user_id, epoch)).encrypt(nonce, data, None)

        payload = (
            f"{epoch}:"
            f"{base64.b64encode(nonce).decode('ascii')}:"
            f"{base64.b64encode(encrypted).decode('ascii')}"
        )
        self.store.set_item(key, payload)

    def read(self, key: str, user_id: str) -> Optional[Any]:
        """
        Read and decrypt a value.

        Returns:
            The stored value, or None when missing, expired (older than the
            previous epoch), malformed, or not decryptable for this user
        """
        raw = self.store.get_item(key)
        if not raw:
            return None

        parts = raw.split(':')
        if len(parts) != 3:
            return None

        try:
            stored_epoch = int(parts[0])
        except ValueError:
            return None

        current_epoch = self.current_epoch()
        # Current epoch or the previous one (grace period)
        if stored_epoch != current_epoch and stored_epoch != current_epoch - 1:
            return None

        try:
            nonce = base64.b64decode(parts[1], validate=True)
            data = base64.b64decode(parts[2], validate=True)
            decrypted = AESGCM(self.derive_key(user_id, stored_epoch)).decrypt(nonce, data, None)
            return json.loads(decrypted.decode('utf-8'))
        except (InvalidTag, binascii.Error, ValueError) as e:
            logger.error(f"Secure read failed for '{key}': {type(e).__name__}")
            return None


class SecureSync:
    """
    A single cached value kept in memory and written through to a SecureCache.

    Usage:
        groups = SecureSync(cache, "mail-groups", {}, user_id)
        groups.set({"team": ["a@x.com"]})
        groups.value
    """

    def __init__(self, cache: SecureCache, key: str, initial_value: Any, user_id: str = "default-user"):
        self.cache = cache
        self.key = key
        self.user_id = user_id
        stored = cache.read(key, user_id)
        self.value = stored if stored is not None else initial_value

    def set(self, value: Any) -> None:
        self.value = value
        try:
            self.cache.write(self.key, value, self.user_id)
        except (TypeError, OSError) as e:
            logger.error(f"Secure write failed for '{self.key}': {e}")


# Global cache instance
_secure_cache: Optional[SecureCache] = None


def get_secure_cache() -> SecureCache:
    """Get the process-wide secure cache configured from settings."""
    global _secure_cache
    if _secure_cache is None:
        from backend.core.config import get_settings
        settings = get_settings()
        store = JsonFileStore(Path(settings.secure_sync_path)) if settings.secure_sync_path else MemoryStore()
        _secure_cache = SecureCache(
            store=store,
            epoch_ms=settings.secure_sync_epoch_ms,
            iterations=settings.secure_sync_iterations,
        )
    return _secure_cache


def reset_secure_cache() -> None:
    global _secure_cache
    _secure_cache = None
