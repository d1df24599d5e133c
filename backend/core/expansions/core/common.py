"""Helpers shared by the built-in expansions."""
from typing import Any, Dict, Optional

from backend.core.expansions.models import ExpansionContext


async def resolve_user_id(context: ExpansionContext, services) -> Optional[str]:
    """User id from the context, falling back to a lookup by email."""
    if context.user_id:
        return context.user_id
    if context.user_email:
        return await services.user.get_id_by_email(context.user_email)
    return None


async def user_section(context: ExpansionContext, services, expansion_id: str) -> Dict[str, Any]:
    """
    The decrypted settings block one expansion stores for the current user.

    Returns an empty dict when the user is unknown or has no settings.
    """
    user_id = await resolve_user_id(context, services)
    if not user_id:
        return {}
    settings = await services.user.get_settings(user_id)
    section = settings.get(expansion_id)
    return section if isinstance(section, dict) else {}


def strip_code_fences(text: str) -> str:
    """Remove ```json fences LLMs like to wrap JSON in."""
    return text.replace('```json', '').replace('```', '').strip()
