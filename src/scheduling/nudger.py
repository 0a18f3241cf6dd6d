"""
Nudge Scheduler

Periodic sweep over sessions waiting on participants. Each outstanding
participant advances independently along pending -> nudged_1 -> nudged_2 ->
escalated as time since their last request crosses the configured
thresholds. The third step notifies the organizer instead of the participant
and flips the session to escalated_to_organizer.

Design Considerations:
- Status and timestamp advance together, and only after a delivered send
- Compare-and-set on the previous status so a concurrent reply wins
- Reminders stored as assistant messages threaded onto the participant's
  latest message
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Any

from src.config.scheduler_config import SCHEDULER_CONFIG
from src.scheduling.addressing import build_references, normalize_email, parse_references
from src.scheduling.base import SessionRepository
from src.scheduling.gateway import EmailGateway
from src.scheduling.models import (
    MessageRecord,
    MessageRole,
    NudgeSummary,
    ParticipantState,
    ParticipantStatus,
    SessionRecord,
    SessionStatus,
    ThreadingContext,
)
from src.utils.date_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


@dataclass
class NudgeThresholds:
    first: timedelta
    second: timedelta
    escalate: timedelta

    @classmethod
    def from_minutes(cls, first: float, second: float, escalate: float) -> "NudgeThresholds":
        return cls(
            first=timedelta(minutes=first),
            second=timedelta(minutes=second),
            escalate=timedelta(minutes=escalate),
        )

    @classmethod
    def default(cls) -> "NudgeThresholds":
        config = SCHEDULER_CONFIG["nudge"]
        return cls.from_minutes(
            config["first_after_minutes"],
            config["second_after_minutes"],
            config["escalate_after_minutes"],
        )


@dataclass
class NudgeAction:
    next_status: ParticipantStatus
    recipient: str
    subject: str
    body: str
    escalation: bool = False


def _first_name(name: Optional[str], email: str) -> str:
    if name and name.strip():
        return name.strip().split()[0]
    return email.split("@", 1)[0]


class NudgeScheduler:
    """
    Sends reminders and escalations for unresponsive participants.

    run_sweep is safe to call on any schedule; a participant only advances
    when their elapsed time crosses the threshold for their current status.
    """

    def __init__(
        self,
        repository: SessionRepository,
        gateway: EmailGateway,
        thresholds: Optional[NudgeThresholds] = None,
    ):
        self.repository = repository
        self.gateway = gateway
        self.thresholds = thresholds or NudgeThresholds.default()

    async def run_sweep(self, now: Optional[datetime] = None) -> NudgeSummary:
        """
        Run one nudge sweep.

        Args:
            now: Reference time, defaults to the current UTC time

        Returns:
            NudgeSummary counters
        """
        now = ensure_utc(now) if now else utc_now()
        summary = NudgeSummary()
        sessions = await self.repository.list_sessions_by_status(
            SessionStatus.PENDING_PARTICIPANT_RESPONSE
        )
        logger.info(f"Nudge sweep checking {len(sessions)} session(s)")

        for session in sessions:
            summary.sessions_checked += 1
            try:
                await self._sweep_session(session, now, summary)
            except Exception as e:
                summary.failures += 1
                logger.error(f"Nudge sweep failed for session {session.session_id}: {str(e)}", exc_info=True)

        logger.info(
            f"Nudge sweep done: {summary.reminders_sent} reminder(s), "
            f"{summary.escalations} escalation(s), {summary.failures} failure(s)"
        )
        return summary

    async def _sweep_session(self, session: SessionRecord, now: datetime, summary: NudgeSummary) -> None:
        history: Optional[List[MessageRecord]] = None
        for participant in session.participants:
            action = self.next_action(session, participant, now)
            if action is None:
                continue
            if history is None:
                history = await self.repository.list_messages(session.session_id)

            threading = self._threading_for(history, participant.email)
            result = await self.gateway.send_threaded(
                subject=action.subject,
                body=action.body,
                recipients=[action.recipient],
                threading=threading,
                routing_token=session.session_id,
                send_as_group=False,
            )
            if not result.success:
                summary.failures += 1
                logger.warning(
                    f"Nudge send failed in session {session.session_id}; "
                    f"participant stays {participant.status.value}"
                )
                continue

            updated = await self.repository.update_participant(
                session.session_id,
                participant.email,
                status=action.next_status,
                last_request_sent_at=now,
                expected_status=participant.status,
            )
            await self._record_nudge(session.session_id, action, result.message_id, threading)

            if updated is None:
                # Participant replied mid-sweep; session status follows their entry, not this send.
                logger.info(f"Participant state changed during sweep in session {session.session_id}")
                continue

            if action.escalation:
                summary.escalations += 1
                await self.repository.update_session(
                    session.session_id, {"status": SessionStatus.ESCALATED_TO_ORGANIZER}
                )
                logger.info(f"Session {session.session_id} escalated to organizer")
            else:
                summary.reminders_sent += 1

    def next_action(
        self, session: SessionRecord, participant: ParticipantState, now: datetime
    ) -> Optional[NudgeAction]:
        """Return the nudge due for a participant, or None."""
        if participant.status in (ParticipantStatus.RECEIVED, ParticipantStatus.ESCALATED):
            return None
        if participant.last_request_sent_at is None:
            return None

        elapsed = now - ensure_utc(participant.last_request_sent_at)
        topic = session.meeting_topic or "meeting"
        name = _first_name(participant.name, participant.email)
        organizer = session.organizer_name or session.organizer_email

        if participant.status == ParticipantStatus.PENDING and elapsed >= self.thresholds.first:
            return NudgeAction(
                next_status=ParticipantStatus.NUDGED_1,
                recipient=participant.email,
                subject=f"Reminder: Availability for {topic}",
                body=(
                    f"Hi {name},\n\nJust a friendly reminder to share your availability for "
                    f"\"{topic}\" requested by {organizer}.\n\n"
                    f"Please reply to this email with times that work for you.\n\nThanks"
                ),
            )
        if participant.status == ParticipantStatus.NUDGED_1 and elapsed >= self.thresholds.second:
            return NudgeAction(
                next_status=ParticipantStatus.NUDGED_2,
                recipient=participant.email,
                subject=f"Second Reminder: Availability for {topic}",
                body=(
                    f"Hi {name},\n\nFollowing up again on the request for your availability for "
                    f"\"{topic}\" requested by {organizer}.\n\n"
                    f"Please let me know your availability as soon as possible.\n\nThanks"
                ),
            )
        if participant.status == ParticipantStatus.NUDGED_2 and elapsed >= self.thresholds.escalate:
            organizer_name = _first_name(session.organizer_name, session.organizer_email)
            return NudgeAction(
                next_status=ParticipantStatus.ESCALATED,
                recipient=session.organizer_email,
                subject=f"Action Required: Issue scheduling {topic}",
                body=(
                    f"Hi {organizer_name},\n\nI haven't received availability from "
                    f"{participant.email} for \"{topic}\", even after two reminders.\n\n"
                    f"How would you like to proceed?\n"
                    f"- Schedule with the participants who have responded\n"
                    f"- Send another reminder\n"
                    f"- Contact {participant.email} directly\n\nThanks"
                ),
                escalation=True,
            )
        return None

    @staticmethod
    def _threading_for(history: List[MessageRecord], email: str) -> ThreadingContext:
        key = normalize_email(email)
        relevant = [
            m for m in history
            if m.sender_email == key
            or key in [normalize_email(r) for r in (m.recipients or "").split(",")]
        ]
        target = relevant[-1] if relevant else (history[-1] if history else None)
        if target is None:
            return ThreadingContext()
        return ThreadingContext(
            in_reply_to=target.message_id_header or target.provider_message_id,
            references=parse_references(target.references),
        )

    async def _record_nudge(
        self,
        session_id: str,
        action: NudgeAction,
        message_id: str,
        threading: ThreadingContext,
    ) -> None:
        record: Dict[str, Any] = {
            "provider_message_id": message_id,
            "message_id_header": message_id,
            "role": MessageRole.AI_AGENT,
            "sender_email": self.gateway.assistant_address,
            "recipients": action.recipient,
            "subject": action.subject,
            "body_text": action.body,
            "in_reply_to": threading.in_reply_to,
            "references": " ".join(build_references(threading.references, threading.in_reply_to)) or None,
        }
        try:
            await self.repository.add_message(session_id, record)
        except Exception as e:
            logger.error(f"Failed to record nudge {message_id} in session {session_id}: {str(e)}")
