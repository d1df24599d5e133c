"""
Mail groups: expand group names typed into To/Cc/Bcc into their members.

Groups are stored in the user's settings under `core-mail-groups.groups` as
a list of {"name": "team", "emails": "a@x.com, b@x.com"}. The name -> emails
map is kept in the secure client cache under `mail-groups:<user id>`, so the
recipient transform never touches the settings store. When the cache entry
is missing or has expired the recipients pass through unchanged until the
next hydration.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional

from backend.core.expansions.models import (
    ON_RECIPIENTS_CHANGE_HANDLER,
    Expansion,
    ExpansionContext,
    Interceptor,
    InterceptKind,
)
from backend.core.security.secure_cache import SecureCache

logger = logging.getLogger(__name__)

EXPANSION_ID = 'core-mail-groups'
CACHE_KEY = 'mail-groups'
RECIPIENT_FIELDS = ('to', 'cc', 'bcc')


def cache_key(user_id: str) -> str:
    """Cache entry holding one user's group map."""
    return f"{CACHE_KEY}:{user_id}"


def normalize_group_name(name: str) -> str:
    """'@Team' and 'team' refer to the same group."""
    name = name.strip().lower()
    if name.startswith('@'):
        name = name[1:]
    return name


def parse_groups(raw_groups: Any) -> Dict[str, List[str]]:
    """Turn the stored settings list into a normalized name -> emails map."""
    groups: Dict[str, List[str]] = {}
    for group in raw_groups or []:
        if not isinstance(group, dict):
            continue
        name = group.get('name')
        emails = group.get('emails')
        if not name or not emails:
            continue
        if isinstance(emails, str):
            emails = emails.split(',')
        members = [e.strip() for e in emails if e and e.strip()]
        if members:
            groups[normalize_group_name(name)] = members
    return groups


def expand_recipients(recipients: Mapping[str, Any], groups: Mapping[str, List[str]]) -> Dict[str, Any]:
    """
    Replace group references in to/cc/bcc with the group's members.

    Order is preserved and members are inserted where the group was. No
    de-duplication is done. Keys other than to/cc/bcc are returned as-is.

    Args:
        recipients: {"to": [...], "cc": [...], "bcc": [...]}, any subset
        groups: Group name (any case, leading '@' optional) -> member emails

    Returns:
        New recipients dict
    """
    lookup = {normalize_group_name(name): list(members) for name, members in groups.items()}
    expanded = dict(recipients)

    for field_name in RECIPIENT_FIELDS:
        tags = recipients.get(field_name)
        if not tags:
            continue
        result = []
        for tag in tags:
            members = lookup.get(normalize_group_name(tag))
            if members:
                logger.debug(f"Expanded group {tag} to {len(members)} recipients")
                result.extend(members)
            else:
                result.append(tag)
        expanded[field_name] = result

    return expanded


async def hydrate_mail_groups(settings_service, cache: SecureCache, user_id: str) -> Dict[str, List[str]]:
    """
    Load the user's groups from settings into the secure cache.

    Returns:
        The group map that was cached
    """
    settings = await settings_service.get_settings(user_id)
    section = settings.get(EXPANSION_ID) or {}
    groups = parse_groups(section.get('groups') if isinstance(section, dict) else None)
    cache.write(cache_key(user_id), groups, user_id)
    logger.info(f"Cached {len(groups)} mail groups for user {user_id}")
    return groups


async def expand_fragment(context: ExpansionContext, services) -> Optional[Dict[str, Any]]:
    fragment = context.fragment
    if not isinstance(fragment, dict) or not context.user_id:
        return fragment

    cache = services.secure_cache
    if cache is None:
        return fragment

    groups = cache.read(cache_key(context.user_id), context.user_id)
    if not groups:
        return fragment

    return expand_recipients(fragment, groups)


MailGroupsExpansion = Expansion(
    id=EXPANSION_ID,
    name='Mail Groups',
    description='Expand group names into their members while composing',
    icon='users',
    interceptors=(
        Interceptor(
            trigger=ON_RECIPIENTS_CHANGE_HANDLER,
            kind=InterceptKind.TRANSFORM,
            execute=expand_fragment,
        ),
    ),
)
