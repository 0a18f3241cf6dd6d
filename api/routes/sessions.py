"""
Session Inspection Routes

Read-only access to scheduling sessions and their message history for
operators reviewing a negotiation.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, status

from api.models.scheduling import MessageView, SessionMessagesResponse, SessionView
from api.services.scheduling_service import SchedulingService, get_scheduling_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["Sessions"])


@router.get(
    "/{session_id}",
    response_model=SessionView,
    summary="Get a scheduling session"
)
async def get_session(
    session_id: str = Path(..., description="Session identifier"),
    service: SchedulingService = Depends(get_scheduling_service)
):
    """Return the current state of one session."""
    record = await service.get_session(session_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id} not found"
        )
    return SessionView.from_record(record)


@router.get(
    "/{session_id}/messages",
    response_model=SessionMessagesResponse,
    summary="Get the message history of a session"
)
async def get_session_messages(
    session_id: str = Path(..., description="Session identifier"),
    service: SchedulingService = Depends(get_scheduling_service)
):
    """Return every stored message of a session in order."""
    record = await service.get_session(session_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id} not found"
        )
    messages = await service.get_messages(session_id)
    return SessionMessagesResponse(
        session_id=session_id,
        messages=[MessageView.from_record(m) for m in messages],
        total=len(messages),
    )
