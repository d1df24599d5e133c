"""
SQLAlchemy Database Models

Stores:
- Users and their expansion settings
- Outbound emails (sent or blocked drafts)

Encryption:
- expansion_settings is a JSON tree whose string leaves are encrypted by the
  settings vault before they reach the database (see
  backend/core/security/vault.py). Numbers, booleans and nulls stay readable.
"""
from sqlalchemy import Column, String, DateTime, Text, JSON, ForeignKey, Index
from sqlalchemy.orm import declarative_base, relationship
import uuid

from backend.core.clock import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    Mail user.

    expansion_settings layout (after decryption):
        {
            "core-slack": {"slackToken": "..."},
            "core-mail-groups": {"groups": [{"name": "team", "emails": "a@x.com, b@x.com"}]},
            "pendingFollowups": [...],
            "lastCronRun": "2025-01-01T00:00:00"
        }
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(320), nullable=False, unique=True, index=True)
    name = Column(String(200))
    signature = Column(Text, default="")

    # Vault-encrypted leaves
    expansion_settings = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    outbound_emails = relationship("OutboundEmail", back_populates="user", cascade="all, delete-orphan")


class OutboundEmail(Base):
    """
    An email the user tried to send.

    status: 'pending' -> 'sent' | 'failed' | 'blocked'
    """
    __tablename__ = "outbound_emails"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    to_addresses = Column(JSON, nullable=False, default=list)
    cc_addresses = Column(JSON, default=list)
    bcc_addresses = Column(JSON, default=list)
    subject = Column(Text, nullable=False, default="")
    body = Column(Text, default="")

    status = Column(String(20), nullable=False, default="pending")
    status_message = Column(Text)
    message_id = Column(String(500))  # RFC822 Message-ID once sent

    created_at = Column(DateTime, default=utcnow)
    sent_at = Column(DateTime)

    user = relationship("User", back_populates="outbound_emails")

    __table_args__ = (
        Index("idx_outbound_user_created", "user_id", "created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "to": list(self.to_addresses or []),
            "cc": list(self.cc_addresses or []),
            "bcc": list(self.bcc_addresses or []),
            "subject": self.subject,
            "status": self.status,
            "messageId": self.message_id,
            "sentAt": self.sent_at.isoformat() if self.sent_at else None,
        }
