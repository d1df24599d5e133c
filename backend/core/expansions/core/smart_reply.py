"""Quick reply suggestions for the email being read."""
import json

from backend.core.expansions.core.common import strip_code_fences
from backend.core.expansions.errors import ExpansionError
from backend.core.expansions.models import (
    Expansion,
    ExpansionContext,
    ExpansionResult,
    Interceptor,
    InterceptKind,
)

SYSTEM_PROMPT = 'You are a helpful assistant. Output JSON only.'


def parse_replies(raw: str) -> list:
    """Accept a bare JSON array or {"replies": [...]}; anything else is no replies."""
    parsed = json.loads(strip_code_fences(raw))
    if isinstance(parsed, dict):
        parsed = parsed.get('replies')
    return parsed if isinstance(parsed, list) else []


async def suggest(context: ExpansionContext, services) -> ExpansionResult:
    if not context.email_content:
        return ExpansionResult(success=False, message='No email content provided')
    if services.ai is None:
        return ExpansionResult(success=False, message='AI not configured')

    prompt = (
        "Generate 3 short, professional reply options for this email.\n"
        'Return JSON array of strings e.g. ["Yes, sure", "I will allow it"].\n'
        f"Email: {context.email_content}"
    )
    try:
        replies = parse_replies(await services.ai.generate(SYSTEM_PROMPT, prompt))
    except (ExpansionError, ValueError) as e:
        return ExpansionResult(success=False, message=str(e))
    return ExpansionResult(success=True, data=replies)


SmartReplyExpansion = Expansion(
    id='core-smart-reply',
    name='Smart Reply',
    description='Generate quick reply suggestions',
    icon='message-square',
    interceptors=(
        Interceptor(trigger='suggest', kind=InterceptKind.API, execute=suggest),
    ),
)
