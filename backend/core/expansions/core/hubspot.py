"""
HubSpot CRM: look up and create contacts from an email's sender.

API actions:
    check_contact   data.email -> {"found": bool, "contact": {...}}
    create_contact  data.email, firstname, lastname, phone

The private app token comes from the user's `core-hubspot.hubspotAccessToken`
setting, falling back to EXPANSION_HUBSPOT_TOKEN.
"""
import logging
from typing import Optional

from backend.core.expansions.core.common import user_section
from backend.core.expansions.errors import ExpansionError
from backend.core.expansions.models import (
    Expansion,
    ExpansionContext,
    ExpansionResult,
    Interceptor,
    InterceptKind,
)

logger = logging.getLogger(__name__)

EXPANSION_ID = 'core-hubspot'
CONTACT_FIELDS = ('email', 'firstname', 'lastname', 'phone')


async def get_hubspot_token(context: ExpansionContext, services) -> Optional[str]:
    token = services.env.get('EXPANSION_HUBSPOT_TOKEN')
    section = await user_section(context, services, EXPANSION_ID)
    if section.get('hubspotAccessToken'):
        token = section['hubspotAccessToken']
    return token or None


async def check_contact(context: ExpansionContext, services) -> ExpansionResult:
    token = await get_hubspot_token(context, services)
    if not token:
        return ExpansionResult(success=False, message='HubSpot not configured')

    email = (context.data or {}).get('email')
    if not email:
        return ExpansionResult(success=False, message='Email required')

    try:
        contact = await services.contacts(token).find_contact(email)
    except ExpansionError as e:
        return ExpansionResult(success=False, message=str(e))

    if contact is None:
        return ExpansionResult(success=True, data={'found': False})
    return ExpansionResult(success=True, data={'found': True, 'contact': contact})


async def create_contact(context: ExpansionContext, services) -> ExpansionResult:
    token = await get_hubspot_token(context, services)
    if not token:
        return ExpansionResult(success=False, message='HubSpot not configured')

    params = context.data or {}
    if not params.get('email'):
        return ExpansionResult(success=False, message='Email required')

    properties = {name: params.get(name) for name in CONTACT_FIELDS if params.get(name) is not None}
    try:
        created = await services.contacts(token).create_contact(properties)
    except ExpansionError as e:
        return ExpansionResult(success=False, message=str(e))

    logger.info(f"[HubSpot] Created contact for {params['email']}")
    return ExpansionResult(success=True, data=created)


HubSpotExpansion = Expansion(
    id=EXPANSION_ID,
    name='HubSpot CRM',
    description='Create and manage HubSpot contacts from emails',
    icon='users',
    interceptors=(
        Interceptor(trigger='check_contact', kind=InterceptKind.API, execute=check_contact),
        Interceptor(trigger='create_contact', kind=InterceptKind.API, execute=create_contact),
    ),
)
