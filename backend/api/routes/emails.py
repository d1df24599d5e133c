"""
Email API endpoints

- POST /api/emails/send                send a draft (pre-send interceptors may veto)
- POST /api/emails/received            notify background interceptors of a new email
- POST /api/emails/recipients/expand   expand mail groups in to/cc/bcc
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from backend.api.auth import CurrentUser, get_current_user
from backend.api.dependencies import get_lifecycle
from backend.api.schemas import (
    ReceivedEmailRequest,
    RecipientsRequest,
    RecipientsResponse,
    SendEmailRequest,
)
from backend.core.email.lifecycle import Draft, MailLifecycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/emails", tags=["emails"])


@router.post("/send")
async def send_email(
    request: SendEmailRequest,
    user: CurrentUser = Depends(get_current_user),
    lifecycle: MailLifecycle = Depends(get_lifecycle),
):
    """
    Send an email.

    A veto is not an error: it returns 200 with
    `{"success": false, "blocked": true, "message": ...}`. SMTP failures
    return 502.
    """
    draft = Draft(
        to=request.to,
        subject=request.subject,
        body=request.body,
        cc=request.cc,
        bcc=request.bcc,
        in_reply_to=request.in_reply_to,
        is_html=request.is_html,
    )
    outcome = await lifecycle.send(user, draft)

    if outcome.blocked or outcome.success:
        return outcome.to_dict()

    logger.warning(f"Send failed for user {user.id}: {outcome.message}")
    return JSONResponse(status_code=502, content=outcome.to_dict())


@router.post("/received")
async def email_received(
    request: ReceivedEmailRequest,
    user: CurrentUser = Depends(get_current_user),
    lifecycle: MailLifecycle = Depends(get_lifecycle),
):
    """Fire the email_received interceptors; returns immediately."""
    scheduled = await lifecycle.receive(
        user.id,
        request.email_id,
        user_email=user.email,
        subject=request.subject,
        content=request.content,
    )
    return {"success": True, "scheduled": scheduled}


@router.post("/recipients/expand", response_model=RecipientsResponse)
async def expand_recipients(
    request: RecipientsRequest,
    user: CurrentUser = Depends(get_current_user),
    lifecycle: MailLifecycle = Depends(get_lifecycle),
):
    """Replace group names (e.g. `@team`) with their members."""
    expanded = await lifecycle.expand_recipients(user.id, request.model_dump())
    return RecipientsResponse(
        to=expanded.get("to") or [],
        cc=expanded.get("cc") or [],
        bcc=expanded.get("bcc") or [],
    )
