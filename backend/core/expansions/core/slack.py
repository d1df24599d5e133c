"""
Slack integration.

API actions:
    get_slack_channels  list channels the bot can see
    share_to_slack      post data.message to data.channelId

The bot token comes from the user's `core-slack.slackToken` setting, falling
back to EXPANSION_SLACK_TOKEN.
"""
import logging
from typing import Optional

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

EXPANSION_ID = 'core-slack'


async def get_slack_token(context: ExpansionContext, services) -> Optional[str]:
    token = services.env.get('EXPANSION_SLACK_TOKEN')
    section = await user_section(context, services, EXPANSION_ID)
    if section.get('slackToken'):
        token = section['slackToken']
    return token or None


async def get_channels(context: ExpansionContext, services) -> ExpansionResult:
    token = await get_slack_token(context, services)
    if not token:
        return ExpansionResult(success=False, message='Slack not configured')

    try:
        channels = await services.messaging(token).list_channels()
    except ExpansionError as e:
        return ExpansionResult(success=False, message=str(e))
    return ExpansionResult(success=True, data=channels)


async def share_message(context: ExpansionContext, services) -> ExpansionResult:
    token = await get_slack_token(context, services)
    if not token:
        return ExpansionResult(success=False, message='Slack not configured')

    params = context.data or {}
    channel_id = params.get('channelId')
    message = params.get('message')
    if not channel_id or not message:
        return ExpansionResult(success=False, message='Missing channel or message')

    try:
        await services.messaging(token).post_message(channel_id, message)
    except ExpansionError as e:
        return ExpansionResult(success=False, message=str(e))
    return ExpansionResult(success=True, message='Message sent')


SlackExpansion = Expansion(
    id=EXPANSION_ID,
    name='Slack Integration',
    description='Share emails to Slack channels',
    icon='slack',
    interceptors=(
        Interceptor(trigger='get_slack_channels', kind=InterceptKind.API, execute=get_channels),
        Interceptor(trigger='share_to_slack', kind=InterceptKind.API, execute=share_message),
    ),
)
