"""
Expansion API endpoints

- GET  /api/expansions?trigger=...           list expansions (optionally by trigger)
- POST /api/expansions/execute               run a named action of one expansion
- POST /api/expansions/{expansion_id}?action  run an API action, first one by default
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from backend.api.auth import CurrentUser, get_current_user
from backend.api.dependencies import get_services
from backend.api.schemas import ExecuteExpansionRequest, ExpansionActionResponse, ExpansionListResponse
from backend.core.expansions.dispatcher import InterceptorDispatcher, get_dispatcher
from backend.core.expansions.models import DispatchOutcome, DispatchResult, ExpansionContext
from backend.core.expansions.registry import ExpansionRegistry, get_registry
from backend.core.expansions.services import ExpansionServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/expansions", tags=["expansions"])


@router.get("", response_model=ExpansionListResponse)
async def list_expansions(
    trigger: Optional[str] = Query(None, description="Only expansions subscribed to this trigger"),
    user: CurrentUser = Depends(get_current_user),
    registry: ExpansionRegistry = Depends(get_registry),
):
    """
    List registered expansions.

    **Returns:**
    - id, name, description, icon and the intercepts of each expansion
    """
    return {"expansions": [e.summary() for e in registry.expansions_for_trigger(trigger)]}


def _action_response(result: DispatchResult):
    """Map a single-selection result to HTTP."""
    if result.outcome == DispatchOutcome.NOT_FOUND:
        raise HTTPException(status_code=404, detail=result.message or "No matching API action found")

    action_result = result.result
    if not action_result.success:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": action_result.message},
        )
    return ExpansionActionResponse(success=True, data=action_result.data, message=action_result.message)


@router.post("/execute", response_model=ExpansionActionResponse)
async def execute_action(
    request: ExecuteExpansionRequest,
    user: CurrentUser = Depends(get_current_user),
    registry: ExpansionRegistry = Depends(get_registry),
    dispatcher: InterceptorDispatcher = Depends(get_dispatcher),
    services: ExpansionServices = Depends(get_services),
):
    """
    Run an API action.

    Body: `{extensionId, action, params, context}`. `params` become the
    action's `data`; `context` supplies email fields (emailId, subject,
    emailContent, ...). The authenticated user always wins over the body.
    """
    if registry.get(request.extension_id) is None:
        raise HTTPException(status_code=404, detail="Expansion not found")

    logger.debug(f"Executing {request.extension_id}.{request.action or '<default>'} for user {user.id}")

    context = ExpansionContext.from_payload(
        request.context,
        user_id=user.id,
        user_email=user.email,
        data=request.params,
    )
    result = await dispatcher.select_single(
        context, services, action=request.action, expansion_id=request.extension_id
    )
    return _action_response(result)


@router.post("/{expansion_id}", response_model=ExpansionActionResponse)
async def run_expansion(
    expansion_id: str,
    action: Optional[str] = Query(None, description="API trigger to run, first one when omitted"),
    body: Optional[Dict[str, Any]] = Body(None),
    user: CurrentUser = Depends(get_current_user),
    registry: ExpansionRegistry = Depends(get_registry),
    dispatcher: InterceptorDispatcher = Depends(get_dispatcher),
    services: ExpansionServices = Depends(get_services),
):
    """
    Run one API action of an expansion; the body is the context.

    Without `action` the expansion's first API action runs.
    """
    if registry.get(expansion_id) is None:
        raise HTTPException(status_code=404, detail="Expansion not found")

    payload = dict(body or {})
    context = ExpansionContext.from_payload(
        payload,
        user_id=user.id,
        user_email=user.email,
        data=payload.get("data") or payload,
    )
    result = await dispatcher.select_single(context, services, action=action, expansion_id=expansion_id)
    return _action_response(result)
