"""
Calendar intelligence: extract event details from an email with the LLM.

The model is asked for a JSON object with title, startDate, endDate,
description and location, or `null` when the email holds no event.
"""
import json
import logging
from datetime import datetime
from typing import Callable

from backend.core.clock import utcnow
from backend.core.expansions.core.common import strip_code_fences
from backend.core.expansions.errors import ExpansionError
from backend.core.expansions.models import (
    Expansion,
    ExpansionContext,
    ExpansionResult,
    Interceptor,
    InterceptKind,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = 'You are a JSON extractor.'
MAX_CONTENT_CHARS = 2000


def build_prompt(content: str, now: datetime) -> str:
    return (
        "Extract the following event details from the email content below.\n"
        "Return ONLY valid JSON with keys: title, startDate (ISO), endDate (ISO), description, location.\n"
        f"If no date is found, try to infer from 'tomorrow' etc relative to now ({now.isoformat()}Z).\n"
        "If absolutely no event, return null.\n\n"
        f"Email:\n{content[:MAX_CONTENT_CHARS]}\n"
    )


def make_event_extractor(now: Callable[[], datetime] = utcnow):
    """Build the extract_event handler; `now` is injectable for tests."""

    async def extract_event(context: ExpansionContext, services) -> ExpansionResult:
        content = context.email_content or ''
        if not content:
            return ExpansionResult(success=False, message='No content')
        if services.ai is None:
            return ExpansionResult(success=False, message='AI not configured')

        try:
            raw = await services.ai.generate(SYSTEM_PROMPT, build_prompt(content, now()))
            data = json.loads(strip_code_fences(raw))
        except (ExpansionError, ValueError) as e:
            logger.warning(f"Event extraction failed: {e}")
            return ExpansionResult(success=False, message='Failed to extract event')

        return ExpansionResult(success=True, data=data)

    return extract_event


CalendarServerExpansion = Expansion(
    id='core-server-calendar',
    name='Calendar Intelligence',
    description='Extracts event details from emails',
    icon='calendar',
    interceptors=(
        Interceptor(trigger='extract_event', kind=InterceptKind.API, execute=make_event_extractor()),
    ),
)
