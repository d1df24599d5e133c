"""
Authentication for FastAPI

Two layers:
1. X-API-Key header → shared secret between the web app and this API
2. X-User-ID / X-User-Email headers → the user the web app is acting for
"""
import secrets
from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from backend.core.config import get_settings
from backend.core.database import get_db
from backend.core.database.repository import SettingsRepository

# API Key header name
API_KEY_NAME = "X-API-Key"

# Create API key header security scheme
api_key_header = APIKeyHeader(name=API_KEY_NAME, auto_error=False)


@dataclass
class CurrentUser:
    id: str
    email: str


async def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> str:
    """
    Verify the X-API-Key header.

    Returns:
        The verified API key

    Raises:
        HTTPException: If authentication fails
    """
    expected = get_settings().api_key
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="API_KEY not configured on server"
        )

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API Key. Include 'X-API-Key' header."
        )

    # Use constant-time comparison to prevent timing attacks
    if not secrets.compare_digest(api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API Key"
        )

    return api_key


async def get_current_user(
    _: str = Depends(verify_api_key),
    x_user_email: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> CurrentUser:
    """
    Resolve the acting user, creating the row on first sight.

    Raises:
        HTTPException: 401 if no user email was forwarded
    """
    if not x_user_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )

    user = SettingsRepository(db).get_or_create_user(x_user_email, user_id=x_user_id)
    return CurrentUser(id=user.id, email=user.email)
