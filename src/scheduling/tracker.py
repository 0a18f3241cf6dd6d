"""
Participant Response Tracker

Keeps per-participant response state and answers the gate question: has every
tracked participant replied? Nudge states are advanced only by the nudge
scheduler; this module moves participants to received on reply and back to
pending when a new request round is sent.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from src.scheduling.addressing import mask_email, normalize_email
from src.scheduling.base import SessionRepository
from src.scheduling.models import ParticipantState, ParticipantStatus, SessionRecord
from src.utils.date_utils import utc_now

logger = logging.getLogger(__name__)


class ParticipantResponseTracker:
    """Per-participant status transitions backed by atomic store updates."""

    def __init__(self, repository: SessionRepository):
        self.repository = repository

    async def record_reply(self, session: SessionRecord, sender_email: str) -> bool:
        """
        Mark the sender's entry as received.

        Any prior status, nudged or escalated included, moves to received.
        An unknown sender is logged as an anomaly and changes nothing.

        Returns:
            True when a participant entry was updated
        """
        entry = session.participant(sender_email)
        if entry is None:
            logger.warning(
                f"Anomaly: reply from {mask_email(sender_email)} who is not a participant "
                f"of session {session.session_id}"
            )
            return False

        updated = await self.repository.update_participant(
            session.session_id, entry.email, status=ParticipantStatus.RECEIVED
        )
        if updated is None:
            logger.warning(f"Participant update failed in session {session.session_id}")
            return False
        entry.status = ParticipantStatus.RECEIVED
        logger.info(f"Participant {mask_email(entry.email)} responded in session {session.session_id}")
        return True

    async def mark_requested(
        self,
        session_id: str,
        emails: Iterable[str],
        at: Optional[datetime] = None,
    ) -> List[ParticipantState]:
        """Start a new request round for the given participants."""
        at = at or utc_now()
        updated = []
        for email in emails:
            result = await self.repository.update_participant(
                session_id,
                normalize_email(email),
                status=ParticipantStatus.PENDING,
                last_request_sent_at=at,
            )
            if result is not None:
                updated.append(result)
        return updated

    @staticmethod
    def gate_open(session: SessionRecord) -> bool:
        """True when every tracked participant has replied (vacuous for none)."""
        return all(p.status == ParticipantStatus.RECEIVED for p in session.participants)

    @staticmethod
    def outstanding(session: SessionRecord) -> List[ParticipantState]:
        return [p for p in session.participants if p.status != ParticipantStatus.RECEIVED]
