"""
Reusable email templates stored in the user's settings.

Settings layout: {"templates": [{"id": "...", "title": "...", "content": "..."}]}
"""
import uuid

from backend.core.expansions.models import (
    Expansion,
    ExpansionContext,
    ExpansionResult,
    Interceptor,
    InterceptKind,
)

TEMPLATES_KEY = 'templates'


async def _load(context: ExpansionContext, services) -> list:
    settings = await services.user.get_settings(context.user_id)
    return list(settings.get(TEMPLATES_KEY) or [])


async def list_templates(context: ExpansionContext, services) -> ExpansionResult:
    if not context.user_id:
        return ExpansionResult(success=False, message='User context required')
    return ExpansionResult(success=True, data=await _load(context, services))


async def save_template(context: ExpansionContext, services) -> ExpansionResult:
    """Update the template with data.id, or append a new one when no id is given."""
    if not context.user_id:
        return ExpansionResult(success=False, message='User context required')

    params = context.data or {}
    template_id = params.get('id')
    title = params.get('title')
    content = params.get('content')
    if not title or not content:
        return ExpansionResult(success=False, message='Title and content required')

    templates = await _load(context, services)
    if template_id:
        templates = [
            {**t, 'title': title, 'content': content} if t.get('id') == template_id else t
            for t in templates
        ]
    else:
        template_id = str(uuid.uuid4())
        templates.append({'id': template_id, 'title': title, 'content': content})

    await services.user.update_settings(context.user_id, {TEMPLATES_KEY: templates})
    return ExpansionResult(success=True, message='Template saved', data={'id': template_id})


async def delete_template(context: ExpansionContext, services) -> ExpansionResult:
    if not context.user_id:
        return ExpansionResult(success=False, message='User context required')

    template_id = (context.data or {}).get('id')
    templates = [t for t in await _load(context, services) if t.get('id') != template_id]

    await services.user.update_settings(context.user_id, {TEMPLATES_KEY: templates})
    return ExpansionResult(success=True, message='Template deleted')


TemplatesExpansion = Expansion(
    id='core-templates',
    name='Templates',
    description='Manage and insert reusable email templates',
    icon='file-text',
    interceptors=(
        Interceptor(trigger='list_templates', kind=InterceptKind.API, execute=list_templates),
        Interceptor(trigger='save_template', kind=InterceptKind.API, execute=save_template),
        Interceptor(trigger='delete_template', kind=InterceptKind.API, execute=delete_template),
    ),
)
