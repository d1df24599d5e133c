"""
Auto follow-up.

After a send, the email is remembered in the user's settings under
`pendingFollowups`. The cron pass moves entries older than the follow-up
delay out of the list and reports them.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from backend.core.clock import utcnow
from backend.core.expansions.models import (
    EMAIL_POST_SEND,
    ORGANIZATION_CRON,
    Expansion,
    ExpansionContext,
    ExpansionResult,
    Interceptor,
    InterceptKind,
)

logger = logging.getLogger(__name__)

PENDING_KEY = 'pendingFollowups'
DEFAULT_DELAY_DAYS = 3.0


def _delay_days(services) -> float:
    raw = services.env.get('EXPANSION_FOLLOWUP_DAYS')
    try:
        return float(raw) if raw else DEFAULT_DELAY_DAYS
    except ValueError:
        logger.warning(f"Invalid EXPANSION_FOLLOWUP_DAYS={raw!r}, using {DEFAULT_DELAY_DAYS}")
        return DEFAULT_DELAY_DAYS


async def track_sent_email(context: ExpansionContext, services) -> ExpansionResult:
    email = context.sent_email
    if not email or not context.user_id:
        return ExpansionResult(success=False, message='No sent email in context')

    settings = await services.user.get_settings(context.user_id)
    pending = list(settings.get(PENDING_KEY) or [])
    pending.append({
        'id': email.get('id'),
        'sentAt': utcnow().isoformat(),
        'subject': email.get('subject'),
    })

    await services.user.update_settings(context.user_id, {PENDING_KEY: pending})
    return ExpansionResult(success=True, message='Tracked for followup')


def make_due_checker(now: Callable[[], datetime] = utcnow):
    """Build the cron handler; `now` is injectable for tests."""

    async def check_due_followups(context: ExpansionContext, services) -> ExpansionResult:
        if not context.user_id:
            return ExpansionResult(success=False, message='User required')

        settings = await services.user.get_settings(context.user_id)
        pending = settings.get(PENDING_KEY) or []
        if not pending:
            return ExpansionResult(success=True)

        cutoff = now() - timedelta(days=_delay_days(services))
        due, remaining = [], []
        for item in pending:
            sent_at = _parse_time(item.get('sentAt'))
            if sent_at is not None and sent_at <= cutoff:
                due.append(item)
            else:
                remaining.append(item)

        if not due:
            return ExpansionResult(success=True, message='No followups due')

        # Persist first so a failed notification does not notify twice
        await services.user.update_settings(context.user_id, {PENDING_KEY: remaining})

        logger.info(
            f"[Followup] User {context.user_id} needs to follow up on: "
            f"{[d.get('subject') for d in due]}"
        )
        return ExpansionResult(success=True, message=f"Found {len(due)} followups", data=due)

    return check_due_followups


def _parse_time(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None
    # Stored timestamps are naive UTC
    if parsed.tzinfo:
        return parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


FollowupExpansion = Expansion(
    id='core-followup',
    name='Auto Follow-up',
    description='Reminds you to follow up if no reply received',
    icon='clock',
    interceptors=(
        Interceptor(trigger=EMAIL_POST_SEND, kind=InterceptKind.BACKGROUND, execute=track_sent_email),
        Interceptor(trigger=ORGANIZATION_CRON, kind=InterceptKind.CRON, execute=make_due_checker()),
    ),
)
