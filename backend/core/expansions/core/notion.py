"""
Notion integration: save emails as rows of a Notion database.

Credentials: `core-notion.notionKey` / `core-notion.databaseId` user
settings, falling back to EXPANSION_NOTION_API_KEY /
EXPANSION_NOTION_DATABASE_ID.
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

EXPANSION_ID = 'core-notion'


async def get_notion_credentials(context: ExpansionContext, services) -> Tuple[Optional[str], Optional[str]]:
    """Return (api_key, database_id); user settings win over env."""
    notion_key = services.env.get('EXPANSION_NOTION_API_KEY')
    database_id = services.env.get('EXPANSION_NOTION_DATABASE_ID')

    section = await user_section(context, services, EXPANSION_ID)
    if section.get('notionKey'):
        notion_key = section['notionKey']
    if section.get('databaseId'):
        database_id = section['databaseId']

    return notion_key, database_id


async def get_schema(context: ExpansionContext, services) -> ExpansionResult:
    notion_key, database_id = await get_notion_credentials(context, services)
    if not notion_key or not database_id:
        return ExpansionResult(success=False, message='Notion not configured')

    try:
        info = await services.docstore(notion_key).get_database(database_id)
    except ExpansionError as e:
        return ExpansionResult(success=False, message=str(e))
    return ExpansionResult(success=True, data=info)


async def save_email(context: ExpansionContext, services) -> ExpansionResult:
    notion_key, database_id = await get_notion_credentials(context, services)
    if not notion_key or not database_id:
        return ExpansionResult(success=False, message='Notion API Key or Database ID not configured.')

    # Action params first, context as fallback
    params = context.data or {}
    subject = params.get('subject') or context.subject or 'Untitled Email'
    content = params.get('content') or context.email_content or ''

    try:
        await services.docstore(notion_key).create_page(
            database_id,
            subject=subject,
            content=content,
            sender=params.get('from'),
            link=params.get('link'),
        )
    except ExpansionError as e:
        return ExpansionResult(success=False, message=str(e))

    return ExpansionResult(success=True, message='Saved to Notion')


NotionExpansion = Expansion(
    id=EXPANSION_ID,
    name='Notion Integration',
    description='Save emails to Notion Database',
    icon='notion',
    interceptors=(
        Interceptor(trigger='get_notion_schema', kind=InterceptKind.API, execute=get_schema),
        Interceptor(trigger='save_to_notion', kind=InterceptKind.API, execute=save_email),
    ),
)
