"""
Secure messages: a message body stored as an encrypted blob and shared as a
link instead of being sent in clear text.
"""
import json
import logging
import uuid
from typing import Any, Dict, Optional

from backend.core.clock import utcnow
from backend.core.security.vault import CredentialVault, get_vault
from backend.core.storage import ObjectStorage, get_storage

logger = logging.getLogger(__name__)

SECURE_PREFIX = "secure"


def _key(message_id: str) -> str:
    return f"{SECURE_PREFIX}/{message_id}.msg"


def create_secure_message(
    sender: str,
    subject: Optional[str],
    content: str,
    app_url: str,
    storage: Optional[ObjectStorage] = None,
    vault: Optional[CredentialVault] = None,
) -> Dict[str, str]:
    """
    Encrypt and upload a message.

    Returns:
        {"id": ..., "viewUrl": ...}
    """
    storage = storage or get_storage()
    vault = vault or get_vault()

    message_id = str(uuid.uuid4())
    payload = json.dumps({
        "subject": subject,
        "content": content,
        "sender": sender,
        "createdAt": utcnow().isoformat(),
    })

    storage.upload(_key(message_id), vault.encrypt(payload), "text/plain")
    logger.info(f"Stored secure message {message_id} for {sender}")

    return {"id": message_id, "viewUrl": f"{app_url.rstrip('/')}/secure/{message_id}"}


def read_secure_message(
    message_id: str,
    storage: Optional[ObjectStorage] = None,
    vault: Optional[CredentialVault] = None,
) -> Optional[Dict[str, Any]]:
    """
    Fetch and decrypt a message.

    Returns:
        Message dict, or None if missing or unreadable
    """
    try:
        uuid.UUID(message_id)
    except ValueError:
        return None

    storage = storage or get_storage()
    vault = vault or get_vault()

    blob = storage.get(_key(message_id))
    if blob is None:
        return None

    try:
        return json.loads(vault.decrypt(blob.decode('utf-8')))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error(f"Secure message {message_id} could not be decrypted: {e}")
        return None
