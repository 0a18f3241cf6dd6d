"""
Nudge Sweep Route

Externally triggered entry point for the periodic nudge sweep. When
CRON_SECRET is configured the caller must present it as a bearer token.
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from api.config import SchedulerSettings, get_settings
from api.models.scheduling import NudgeSweepResponse
from api.services.scheduling_service import SchedulingService, get_scheduling_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])


async def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
    settings: SchedulerSettings = Depends(get_settings)
) -> None:
    """Reject the request unless it carries the configured bearer secret."""
    if settings.CRON_SECRET is None or not settings.CRON_SECRET.get_secret_value():
        return
    expected = f"Bearer {settings.CRON_SECRET.get_secret_value()}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        logger.warning("Rejected nudge sweep request with missing or invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )


@router.api_route(
    "/nudge",
    methods=["GET", "POST"],
    response_model=NudgeSweepResponse,
    summary="Run the participant nudge sweep",
    dependencies=[Depends(verify_cron_secret)]
)
async def run_nudge_sweep(
    service: SchedulingService = Depends(get_scheduling_service)
):
    """
    Send due reminders and escalations.

    Returns:
        Sweep counters
    """
    try:
        summary = await service.run_nudge_sweep()
    except Exception as e:
        logger.error(f"Nudge sweep failed: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Nudge sweep failed"
        )
    return NudgeSweepResponse(**summary.to_dict())
