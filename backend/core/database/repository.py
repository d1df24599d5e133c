"""
Repositories for users, their encrypted settings, and outbound emails.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from backend.core.clock import utcnow
from backend.core.database.models import OutboundEmail, User
from backend.core.security.vault import CredentialVault, get_vault

logger = logging.getLogger(__name__)


class SettingsRepository:
    """
    Read/write per-user expansion settings through the vault.

    Callers only ever see decrypted trees; the database only ever receives
    encrypted ones (or plaintext if the vault is in degraded mode).
    """

    def __init__(self, db: Session, vault: Optional[CredentialVault] = None):
        self.db = db
        self.vault = vault or get_vault()

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.lower()).first()

    def get_user_id_by_email(self, email: str) -> Optional[str]:
        user = self.get_user_by_email(email)
        return user.id if user else None

    def get_or_create_user(self, email: str, user_id: Optional[str] = None, name: Optional[str] = None) -> User:
        """
        Find a user by id or email, creating it on first sight.

        Args:
            email: User email (stored lower-cased)
            user_id: Id assigned by the session layer, if any
            name: Display name for new users
        """
        user = self.get_user(user_id) if user_id else None
        if user is None:
            user = self.get_user_by_email(email)
        if user is None:
            user = User(email=email.lower(), name=name, expansion_settings={})
            if user_id:
                user.id = user_id
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
            logger.info(f"Created user {user.id}")
        return user

    def read_settings(self, user_id: str) -> Dict[str, Any]:
        """
        Decrypted settings tree for a user.

        Returns:
            Settings dict ({} for unknown users)
        """
        user = self.get_user(user_id)
        if user is None:
            return {}
        return self.vault.decrypt_object(user.expansion_settings or {})

    def write_settings(self, user_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge top-level keys into the stored settings and encrypt the result.

        Args:
            user_id: Owner
            partial: Keys to set (a key's whole subtree is replaced)

        Returns:
            The merged, decrypted tree

        Raises:
            LookupError: If the user does not exist
        """
        user = self.get_user(user_id)
        if user is None:
            raise LookupError(f"User {user_id} not found")

        merged = {**self.vault.decrypt_object(user.expansion_settings or {}), **(partial or {})}
        # Assign a new object so the JSON column is flagged dirty
        user.expansion_settings = self.vault.encrypt_object(merged)
        self.db.commit()
        return merged

    def replace_settings(self, user_id: str, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Overwrite the whole settings tree."""
        user = self.get_user(user_id)
        if user is None:
            raise LookupError(f"User {user_id} not found")
        user.expansion_settings = self.vault.encrypt_object(settings or {})
        self.db.commit()
        return settings or {}

    def get_signature(self, user_id: str) -> str:
        user = self.get_user(user_id)
        return (user.signature or "") if user else ""

    def set_signature(self, user_id: str, signature: str) -> None:
        user = self.get_user(user_id)
        if user is None:
            raise LookupError(f"User {user_id} not found")
        user.signature = signature
        self.db.commit()


class OutboundEmailRepository:
    """Track emails through send / block / failure."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        user_id: str,
        to: List[str],
        subject: str,
        body: str,
        cc: Optional[List[str]] = None,
        bcc: Optional[List[str]] = None,
    ) -> OutboundEmail:
        email = OutboundEmail(
            user_id=user_id,
            to_addresses=list(to),
            cc_addresses=list(cc or []),
            bcc_addresses=list(bcc or []),
            subject=subject or "",
            body=body or "",
            status="pending",
        )
        self.db.add(email)
        self.db.commit()
        self.db.refresh(email)
        return email

    def get(self, email_id: str) -> Optional[OutboundEmail]:
        return self.db.query(OutboundEmail).filter(OutboundEmail.id == email_id).first()

    def mark_sent(self, email: OutboundEmail, message_id: Optional[str]) -> OutboundEmail:
        email.status = "sent"
        email.message_id = message_id
        email.sent_at = utcnow()
        self.db.commit()
        return email

    def mark_failed(self, email: OutboundEmail, reason: str) -> OutboundEmail:
        email.status = "failed"
        email.status_message = reason
        self.db.commit()
        return email

    def mark_blocked(self, email: OutboundEmail, reason: Optional[str]) -> OutboundEmail:
        email.status = "blocked"
        email.status_message = reason
        self.db.commit()
        return email
