"""
Cron API endpoint

The web app calls this periodically per user; runs are debounced so a
user's cron interceptors fire at most once per interval.
"""
from fastapi import APIRouter, Depends

from backend.api.auth import CurrentUser, get_current_user
from backend.api.dependencies import get_lifecycle
from backend.core.email.lifecycle import MailLifecycle

router = APIRouter(prefix="/api/cron", tags=["cron"])


@router.post("/run")
async def run_cron(
    user: CurrentUser = Depends(get_current_user),
    lifecycle: MailLifecycle = Depends(get_lifecycle),
):
    """
    Run the ORGANIZATION_CRON interceptors for the current user.

    **Returns:**
    - `{"skipped": true, "reason": "Too soon"}` inside the interval
    - `{"success": true, "scheduled": n}` otherwise
    """
    return await lifecycle.run_cron(user)
