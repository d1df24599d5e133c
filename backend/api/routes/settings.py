"""
User settings API endpoints

Expansion settings are stored vault-encrypted; these endpoints only ever
expose the decrypted tree to the authenticated user.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.api.auth import CurrentUser, get_current_user
from backend.api.dependencies import get_services
from backend.api.schemas import SettingsUpdateRequest
from backend.core.database import get_db
from backend.core.database.repository import SettingsRepository
from backend.core.expansions.core.mail_groups import EXPANSION_ID as MAIL_GROUPS_ID, hydrate_mail_groups
from backend.core.expansions.services import ExpansionServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("")
async def get_user_settings(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Signature and decrypted expansion settings of the current user."""
    repo = SettingsRepository(db)
    return {
        "signature": repo.get_signature(user.id),
        "expansionSettings": repo.read_settings(user.id),
    }


@router.post("")
async def update_user_settings(
    request: SettingsUpdateRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    services: ExpansionServices = Depends(get_services),
):
    """
    Update signature and/or expansion settings.

    Top-level keys of `expansionSettings` replace the stored ones, other
    keys are left alone.
    """
    repo = SettingsRepository(db)

    if request.signature is not None:
        repo.set_signature(user.id, request.signature)

    settings = repo.read_settings(user.id)
    if request.expansion_settings is not None:
        settings = repo.write_settings(user.id, request.expansion_settings)
        logger.info(f"Updated settings {sorted(request.expansion_settings)} for user {user.id}")

        if MAIL_GROUPS_ID in request.expansion_settings and services.secure_cache is not None:
            await hydrate_mail_groups(services.user, services.secure_cache, user.id)

    return {
        "success": True,
        "signature": repo.get_signature(user.id),
        "expansionSettings": settings,
    }
