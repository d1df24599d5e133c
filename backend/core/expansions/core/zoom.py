"""
Zoom integration: create a meeting and hand back its join link.

Credentials: `core-zoom.zoomAccountId` / `zoomClientId` / `zoomClientSecret`
user settings, each falling back to EXPANSION_ZOOM_ACCOUNT_ID /
EXPANSION_ZOOM_CLIENT_ID / EXPANSION_ZOOM_CLIENT_SECRET.
"""
import logging
from typing import Optional, Tuple

from backend.core.expansions.core.common import user_section
from backend.core.expansions.errors import ExpansionError
from backend.core.expansions.models import (
    Expansion,
    ExpansionContext,
    ExpansionResult,
    Interceptor,
    InterceptKind,
)

logger = logging.getLogger(__name__)

EXPANSION_ID = 'core-zoom'
DEFAULT_TOPIC = 'New Meeting'
DEFAULT_DURATION = 60

_CREDENTIALS = (
    ('zoomAccountId', 'EXPANSION_ZOOM_ACCOUNT_ID'),
    ('zoomClientId', 'EXPANSION_ZOOM_CLIENT_ID'),
    ('zoomClientSecret', 'EXPANSION_ZOOM_CLIENT_SECRET'),
)


async def get_zoom_credentials(context: ExpansionContext, services) -> Optional[Tuple[str, str, str]]:
    """(account_id, client_id, client_secret), or None if any is missing."""
    section = await user_section(context, services, EXPANSION_ID)
    values = tuple(section.get(setting) or services.env.get(env) for setting, env in _CREDENTIALS)
    return values if all(values) else None


async def create_meeting(context: ExpansionContext, services) -> ExpansionResult:
    credentials = await get_zoom_credentials(context, services)
    if credentials is None:
        return ExpansionResult(success=False, message='Zoom not configured')

    params = context.data or {}
    try:
        meeting = await services.meetings(*credentials).create_meeting(
            params.get('topic') or DEFAULT_TOPIC,
            params.get('duration') or DEFAULT_DURATION,
            params.get('startTime'),
        )
    except ExpansionError as e:
        return ExpansionResult(success=False, message=str(e))

    return ExpansionResult(
        success=True,
        data={'joinUrl': meeting.get('join_url'), 'password': meeting.get('password')},
    )


ZoomExpansion = Expansion(
    id=EXPANSION_ID,
    name='Zoom Integration',
    description='Insert Zoom meeting links',
    icon='video',
    interceptors=(
        Interceptor(trigger='create_meeting', kind=InterceptKind.API, execute=create_meeting),
    ),
)
