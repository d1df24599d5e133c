"""CRM connector: log received emails to an external CRM endpoint."""
import logging

from backend.core.expansions.models import (
    EMAIL_RECEIVED,
    Expansion,
    ExpansionContext,
    ExpansionResult,
    Interceptor,
    InterceptKind,
)

logger = logging.getLogger(__name__)


async def log_to_crm(context: ExpansionContext, services) -> ExpansionResult:
    crm_url = services.env.get('EXPANSION_CRM_URL')
    crm_key = services.env.get('EXPANSION_CRM_API_KEY')

    if not crm_url or not crm_key:
        return ExpansionResult(success=False, message='CRM not configured')
    if services.http is None:
        return ExpansionResult(success=False, message='HTTP client not available')

    logger.info(f"[CRM] Logging email {context.email_id} to {crm_url}")
    status = await services.http.post_json(
        crm_url,
        {'emailId': context.email_id, 'userId': context.user_id},
        headers={'Authorization': f"Bearer {crm_key}"},
    )
    if status >= 400:
        return ExpansionResult(success=False, message=f"CRM returned {status}")

    return ExpansionResult(success=True, message='Logged to CRM')


CRMExpansion = Expansion(
    id='core-crm',
    name='CRM Connector',
    description='Log emails to external CRM',
    icon='database',
    interceptors=(
        Interceptor(trigger=EMAIL_RECEIVED, kind=InterceptKind.BACKGROUND, execute=log_to_crm),
    ),
)
