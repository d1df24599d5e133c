"""
Secure message API endpoints

Message bodies are encrypted and parked in object storage; recipients get a
link instead of the content. Storage calls block (boto3), so the handlers
are plain functions and run in the threadpool.
"""
from fastapi import APIRouter, Depends, HTTPException

from backend.api.auth import CurrentUser, get_current_user, verify_api_key
from backend.api.schemas import SecureMessageRequest
from backend.core.config import get_settings
from backend.core.secure_messages import create_secure_message, read_secure_message

router = APIRouter(prefix="/api/secure-message", tags=["secure-message"])


@router.post("")
def create_message(
    request: SecureMessageRequest,
    user: CurrentUser = Depends(get_current_user),
):
    """Store an encrypted message and return its view URL."""
    created = create_secure_message(
        sender=user.email,
        subject=request.subject,
        content=request.content,
        app_url=get_settings().app_url,
    )
    return {"success": True, **created}


@router.get("/{message_id}", dependencies=[Depends(verify_api_key)])
def get_message(message_id: str):
    """
    Decrypted message for the viewer page.

    Any holder of the link may read it, so only the API key is required.
    """
    message = read_secure_message(message_id)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return message
