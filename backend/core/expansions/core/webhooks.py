"""
Webhook forwarding for received emails.

Posts {"event": "email_received", "data": {...}} to EXPANSION_WEBHOOK_URL.
"""
import logging

from backend.core.clock import utcnow
from backend.core.expansions.models import (
    EMAIL_RECEIVED,
    Expansion,
    ExpansionContext,
    ExpansionResult,
    Interceptor,
    InterceptKind,
)

logger = logging.getLogger(__name__)


async def forward_received(context: ExpansionContext, services) -> ExpansionResult:
    webhook_url = services.env.get('EXPANSION_WEBHOOK_URL')
    if not webhook_url:
        return ExpansionResult(success=False, message='No webhook URL configured')
    if services.http is None:
        return ExpansionResult(success=False, message='HTTP client not available')

    payload = {
        'event': EMAIL_RECEIVED,
        'data': {
            'emailId': context.email_id,
            'userId': context.user_id,
            'timestamp': utcnow().isoformat() + 'Z',
        },
    }
    logger.debug(f"Forwarding email {context.email_id} to webhook")
    status = await services.http.post_json(webhook_url, payload)
    if status >= 400:
        return ExpansionResult(success=False, message=f"Webhook returned {status}")

    return ExpansionResult(success=True, message='Webhook triggered')


WebhookExpansion = Expansion(
    id='core-webhooks',
    name='Webhook Integration',
    description='Forward email events to external webhooks',
    icon='webhook',
    interceptors=(
        Interceptor(trigger=EMAIL_RECEIVED, kind=InterceptKind.BACKGROUND, execute=forward_received),
    ),
)
