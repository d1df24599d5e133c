"""Outbound mail: SMTP delivery and the expansion lifecycle around it."""
from .smtp_sender import SMTPSender
from .lifecycle import (
    Draft,
    SendOutcome,
    MailLifecycle,
    build_lifecycle,
)

__all__ = [
    'SMTPSender',
    'Draft',
    'SendOutcome',
    'MailLifecycle',
    'build_lifecycle',
]
