"""
Data Loss Prevention: block outgoing emails that mention sensitive keywords.

Keywords come from EXPANSION_DLP_KEYWORDS (comma separated).
"""
from typing import List

from backend.core.expansions.models import (
    EMAIL_PRE_SEND,
    Expansion,
    ExpansionContext,
    ExpansionResult,
    Interceptor,
    InterceptKind,
    Priority,
)

DEFAULT_KEYWORDS = "password,secret,credit card"


def parse_keywords(raw: str) -> List[str]:
    return [k.strip().lower() for k in raw.split(',') if k.strip()]


async def check_outgoing(context: ExpansionContext, services) -> ExpansionResult:
    keywords = parse_keywords(services.env.get('EXPANSION_DLP_KEYWORDS') or DEFAULT_KEYWORDS)
    if not keywords:
        return ExpansionResult(success=True)

    content = (context.email_content or '').lower()
    subject = (context.subject or '').lower()

    violations = [k for k in keywords if k in content or k in subject]
    if violations:
        return ExpansionResult(
            success=False,
            stop=True,
            message=f"DLP Block: Found sensitive keywords: {', '.join(violations)}",
        )

    return ExpansionResult(success=True)


DLPExpansion = Expansion(
    id='core-dlp',
    name='Data Loss Prevention',
    description='Block emails containing sensitive keywords',
    icon='shield',
    interceptors=(
        Interceptor(
            trigger=EMAIL_PRE_SEND,
            kind=InterceptKind.BLOCKING,
            execute=check_outgoing,
            priority=Priority.HIGH,
        ),
    ),
)
