"""AI summary of the email being read."""
from backend.core.expansions.errors import ExpansionError
from backend.core.expansions.models import (
    Expansion,
    ExpansionContext,
    ExpansionResult,
    Interceptor,
    InterceptKind,
)

SYSTEM_PROMPT = 'You are a helpful assistant.'


async def summarize(context: ExpansionContext, services) -> ExpansionResult:
    if not context.email_content:
        return ExpansionResult(success=False, message='No email content provided')
    if services.ai is None:
        return ExpansionResult(success=False, message='AI not configured')

    prompt = f"Summarize this email in 3 bullet points:\n\n{context.email_content}"
    try:
        summary = await services.ai.generate(SYSTEM_PROMPT, prompt)
    except ExpansionError as e:
        return ExpansionResult(success=False, message=str(e))
    return ExpansionResult(success=True, data=summary)


SummarizerExpansion = Expansion(
    id='core-summarizer',
    name='Summarize',
    description='Summarize the email content using AI',
    icon='sparkles',
    interceptors=(
        Interceptor(trigger='summarize', kind=InterceptKind.API, execute=summarize),
    ),
)
