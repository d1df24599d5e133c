"""Draft an email body from a short prompt typed in the composer."""
from backend.core.expansions.errors import ExpansionError
from backend.core.expansions.models import (
    Expansion,
    ExpansionContext,
    ExpansionResult,
    Interceptor,
    InterceptKind,
)

SYSTEM_PROMPT = 'You are a helpful writing assistant.'


async def generate(context: ExpansionContext, services) -> ExpansionResult:
    # The composer sends the user's prompt as emailContent
    if not context.email_content:
        return ExpansionResult(success=False, message='No prompt provided')
    if services.ai is None:
        return ExpansionResult(success=False, message='AI not configured')

    prompt = (
        "Help me write an email.\n"
        f"User Prompt: {context.email_content}\n\n"
        "Write a professional email body based on this prompt."
    )
    try:
        body = await services.ai.generate(SYSTEM_PROMPT, prompt)
    except ExpansionError as e:
        return ExpansionResult(success=False, message=str(e))
    return ExpansionResult(success=True, data=body)


ComposerHelperExpansion = Expansion(
    id='core-composer-helper',
    name='Composer Helper',
    description='Help write emails in the composer',
    icon='pen-tool',
    interceptors=(
        Interceptor(trigger='generate', kind=InterceptKind.API, execute=generate),
    ),
)
