"""Translate email content to English."""
from backend.core.expansions.errors import ExpansionError
from backend.core.expansions.models import (
    Expansion,
    ExpansionContext,
    ExpansionResult,
    Interceptor,
    InterceptKind,
)

SYSTEM_PROMPT = 'You are a professional translator.'


async def translate(context: ExpansionContext, services) -> ExpansionResult:
    if not context.email_content:
        return ExpansionResult(success=False, message='No content to translate')
    if services.ai is None:
        return ExpansionResult(success=False, message='AI not configured')

    prompt = (
        "Translate the following email to English (or preserve if already English). "
        "Maintain tone and basic formatting.\n\n"
        f"{context.email_content}"
    )
    try:
        translation = await services.ai.generate(SYSTEM_PROMPT, prompt)
    except ExpansionError as e:
        return ExpansionResult(success=False, message=str(e))
    return ExpansionResult(success=True, data=translation)


TranslatorExpansion = Expansion(
    id='core-translator',
    name='Translator',
    description='Translate email content to English',
    icon='languages',
    interceptors=(
        Interceptor(trigger='translate', kind=InterceptKind.API, execute=translate),
    ),
)
