"""
Trello integration: turn an email into a card.

API actions:
    get_trello_boards   boards of the token's member
    get_trello_lists    lists of data.boardId
    create_trello_card  data.listId, data.name, optional data.desc

Credentials: `core-trello.trelloKey` / `core-trello.trelloToken` user
settings, falling back to EXPANSION_TRELLO_KEY / EXPANSION_TRELLO_TOKEN.
"""
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

EXPANSION_ID = 'core-trello'
NOT_CONFIGURED = 'Trello not configured'


async def get_trello_credentials(context: ExpansionContext, services) -> Optional[Tuple[str, str]]:
    key = services.env.get('EXPANSION_TRELLO_KEY')
    token = services.env.get('EXPANSION_TRELLO_TOKEN')

    section = await user_section(context, services, EXPANSION_ID)
    if section.get('trelloKey'):
        key = section['trelloKey']
    if section.get('trelloToken'):
        token = section['trelloToken']

    return (key, token) if key and token else None


async def get_boards(context: ExpansionContext, services) -> ExpansionResult:
    credentials = await get_trello_credentials(context, services)
    if credentials is None:
        return ExpansionResult(success=False, message=NOT_CONFIGURED)

    try:
        boards = await services.boards(*credentials).list_boards()
    except ExpansionError as e:
        return ExpansionResult(success=False, message=str(e))
    return ExpansionResult(success=True, data=boards)


async def get_lists(context: ExpansionContext, services) -> ExpansionResult:
    credentials = await get_trello_credentials(context, services)
    if credentials is None:
        return ExpansionResult(success=False, message=NOT_CONFIGURED)

    board_id = (context.data or {}).get('boardId')
    if not board_id:
        return ExpansionResult(success=False, message='Board ID required')

    try:
        lists = await services.boards(*credentials).list_lists(board_id)
    except ExpansionError as e:
        return ExpansionResult(success=False, message=str(e))
    return ExpansionResult(success=True, data=lists)


async def create_card(context: ExpansionContext, services) -> ExpansionResult:
    credentials = await get_trello_credentials(context, services)
    if credentials is None:
        return ExpansionResult(success=False, message=NOT_CONFIGURED)

    params = context.data or {}
    list_id = params.get('listId')
    name = params.get('name')
    if not list_id or not name:
        return ExpansionResult(success=False, message='List and Name required')

    try:
        card = await services.boards(*credentials).create_card(list_id, name, params.get('desc'))
    except ExpansionError as e:
        return ExpansionResult(success=False, message=str(e))
    return ExpansionResult(success=True, data={'url': card.get('shortUrl')})


TrelloExpansion = Expansion(
    id=EXPANSION_ID,
    name='Trello Integration',
    description='Create Trello cards from emails',
    icon='trello',
    interceptors=(
        Interceptor(trigger='get_trello_boards', kind=InterceptKind.API, execute=get_boards),
        Interceptor(trigger='get_trello_lists', kind=InterceptKind.API, execute=get_lists),
        Interceptor(trigger='create_trello_card', kind=InterceptKind.API, execute=create_card),
    ),
)
