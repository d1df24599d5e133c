"""
Mail lifecycle hooks.

The points where the mail flow hands control to the expansion engine:

    send()               EMAIL_PRE_SEND (may veto), SMTP, EMAIL_POST_SEND
    receive()            email_received
    run_cron()           ORGANIZATION_CRON, at most once per interval per user
    expand_recipients()  ON_RECIPIENTS_CHANGE_HANDLER transform chain
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from backend.core.clock import utcnow
from backend.core.database.repository import OutboundEmailRepository
from backend.core.email.smtp_sender import SMTPSender
from backend.core.expansions.core.mail_groups import cache_key as mail_groups_cache_key, hydrate_mail_groups
from backend.core.expansions.dispatcher import InterceptorDispatcher
from backend.core.expansions.models import (
    EMAIL_POST_SEND,
    EMAIL_PRE_SEND,
    EMAIL_RECEIVED,
    ON_RECIPIENTS_CHANGE_HANDLER,
    ORGANIZATION_CRON,
    ExpansionContext,
)

logger = logging.getLogger(__name__)

LAST_CRON_KEY = 'lastCronRun'


@dataclass
class Draft:
    """An email the user asked to send."""
    to: List[str]
    subject: str = ''
    body: str = ''
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    in_reply_to: Optional[str] = None
    is_html: bool = False


@dataclass
class SendOutcome:
    success: bool
    blocked: bool = False
    message: Optional[str] = None
    email: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"success": self.success, "message": self.message}
        if self.blocked:
            data["blocked"] = True
        if self.email is not None:
            data["email"] = self.email
        return data


class MailLifecycle:
    """
    Runs the expansion triggers around the mail operations.

    Args:
        dispatcher: Interceptor dispatcher
        services: ExpansionServices handed to interceptors
        sender: SMTP transport
        session_factory: Opens database sessions for outbound email records
        cron_interval_seconds: Minimum time between cron runs per user
        now: Clock, injectable for tests
    """

    def __init__(
        self,
        dispatcher: InterceptorDispatcher,
        services,
        sender: SMTPSender,
        session_factory: sessionmaker,
        cron_interval_seconds: int = 3600,
        now: Callable[[], datetime] = utcnow,
    ):
        self.dispatcher = dispatcher
        self.services = services
        self.sender = sender
        self.session_factory = session_factory
        self.cron_interval_seconds = cron_interval_seconds
        self.now = now

    async def send(self, user, draft: Draft) -> SendOutcome:
        """
        Send a draft on behalf of `user` (anything with .id and .email).

        A veto from a pre-send interceptor is a normal outcome: the email is
        recorded as blocked and nothing is sent.
        """
        context = ExpansionContext(
            user_id=user.id,
            user_email=user.email,
            subject=draft.subject,
            email_content=draft.body,
            to=list(draft.to),
            cc=list(draft.cc),
            bcc=list(draft.bcc),
        )

        verdict = await self.dispatcher.dispatch(EMAIL_PRE_SEND, context, self.services)

        # Database and smtplib calls block, keep them off the event loop
        email_id = await asyncio.to_thread(self._record_draft, user.id, draft)

        if verdict.blocked:
            await asyncio.to_thread(self._finish_record, email_id, "blocked", verdict.message)
            logger.info(f"Send blocked for user {user.id}: {verdict.message}")
            return SendOutcome(success=False, blocked=True, message=verdict.message)

        message_id = await asyncio.to_thread(
            self.sender.send_email,
            draft.to,
            draft.subject,
            draft.body,
            draft.cc,
            draft.bcc,
            draft.in_reply_to,
            draft.is_html,
        )
        if message_id is None:
            failed = await asyncio.to_thread(self._finish_record, email_id, "failed", "SMTP delivery failed")
            return SendOutcome(success=False, message="Failed to send email", email=failed)

        sent_email = await asyncio.to_thread(self._finish_record, email_id, "sent", message_id)

        await self.dispatcher.dispatch(
            EMAIL_POST_SEND,
            ExpansionContext(
                user_id=user.id,
                user_email=user.email,
                email_id=sent_email["id"],
                subject=draft.subject,
                email_content=draft.body,
                to=list(draft.to),
                cc=list(draft.cc),
                bcc=list(draft.bcc),
                sent_email=sent_email,
            ),
            self.services,
        )
        return SendOutcome(success=True, message="Email sent", email=sent_email)

    def _record_draft(self, user_id: str, draft: Draft) -> str:
        with self.session_factory() as db:
            record = OutboundEmailRepository(db).create(
                user_id, draft.to, draft.subject, draft.body, draft.cc, draft.bcc
            )
            return record.id

    def _finish_record(self, email_id: str, status: str, detail: Optional[str]) -> Dict[str, Any]:
        """Move an outbound record to blocked/failed/sent and return it as a dict."""
        with self.session_factory() as db:
            repo = OutboundEmailRepository(db)
            record = repo.get(email_id)
            if status == "blocked":
                repo.mark_blocked(record, detail)
            elif status == "failed":
                repo.mark_failed(record, detail)
            else:
                repo.mark_sent(record, detail)
            return record.to_dict()

    async def receive(self, user_id: str, email_id: str, user_email: Optional[str] = None,
                      subject: Optional[str] = None, content: Optional[str] = None) -> int:
        """
        Notify background interceptors about a received email.

        Returns:
            Number of interceptors scheduled
        """
        result = await self.dispatcher.dispatch(
            EMAIL_RECEIVED,
            ExpansionContext(
                user_id=user_id,
                user_email=user_email,
                email_id=email_id,
                subject=subject,
                email_content=content,
            ),
            self.services,
        )
        return len(result.tasks)

    async def run_cron(self, user) -> Dict[str, Any]:
        """
        Run the cron interceptors for a user, debounced by `lastCronRun`.

        Returns:
            {"skipped": True, "reason": "Too soon"} or {"success": True, "scheduled": n}
        """
        settings = await self.services.user.get_settings(user.id)
        now = self.now()

        last_run = _parse_last_run(settings.get(LAST_CRON_KEY))
        if last_run is not None and (now - last_run).total_seconds() < self.cron_interval_seconds:
            return {"skipped": True, "reason": "Too soon"}

        # Stamp first so overlapping requests do not both run
        await self.services.user.update_settings(user.id, {LAST_CRON_KEY: now.isoformat()})

        result = await self.dispatcher.dispatch(
            ORGANIZATION_CRON,
            ExpansionContext(user_id=user.id, user_email=user.email),
            self.services,
        )
        logger.info(f"[Cron] Scheduled {len(result.tasks)} cron interceptors for user {user.id}")
        return {"success": True, "scheduled": len(result.tasks)}

    async def expand_recipients(self, user_id: str, recipients: Dict[str, List[str]]) -> Dict[str, List[str]]:
        """
        Run the recipient transforms (mail groups) over to/cc/bcc.

        Re-hydrates the cached group map first when it is missing or has
        rotated out.
        """
        cache = self.services.secure_cache
        if cache is not None and cache.read(mail_groups_cache_key(user_id), user_id) is None:
            await hydrate_mail_groups(self.services.user, cache, user_id)

        context = ExpansionContext(user_id=user_id, fragment=dict(recipients))
        result = await self.dispatcher.dispatch(ON_RECIPIENTS_CHANGE_HANDLER, context, self.services)
        return result.fragment if result.fragment is not None else dict(recipients)


def _parse_last_run(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        logger.warning(f"Ignoring unparseable {LAST_CRON_KEY}={value!r}")
        return None
    # Stored timestamps are naive UTC
    if parsed.tzinfo:
        return parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def build_lifecycle(dispatcher=None, services=None, session_factory=None, settings=None) -> MailLifecycle:
    """Lifecycle wired to the global dispatcher, services and settings."""
    from backend.core.config import get_settings
    from backend.core.database.connection import get_session_factory
    from backend.core.expansions.dispatcher import get_dispatcher
    from backend.core.expansions.services import build_default_services

    settings = settings or get_settings()
    session_factory = session_factory or get_session_factory()
    return MailLifecycle(
        dispatcher=dispatcher or get_dispatcher(),
        services=services or build_default_services(session_factory=session_factory, settings=settings),
        sender=SMTPSender.from_settings(settings),
        session_factory=session_factory,
        cron_interval_seconds=settings.cron_interval_seconds,
    )
