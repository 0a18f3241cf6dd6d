"""
Scheduling Workflow State Machine

Turns a decision engine action into an outbound plan: who receives the email,
whether it goes out as one group message, and which session status follows a
successful send. The workflow is the final authority on recipients; the
engine's list is only a hint that is filtered against session roles.

Design Considerations:
- Assistant addresses removed before any other rule applies
- An engine list that is empty after that filter never produces a send
- Participant-only steps never include the organizer
- Organizer-pending status never shown while asked participants are outstanding
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from src.scheduling.addressing import is_assistant_address, normalize_email
from src.scheduling.enrichment import extract_confirmed_datetime
from src.scheduling.models import (
    ActionDecision,
    Intent,
    IntentResult,
    NextStep,
    ParticipantStatus,
    SessionRecord,
    SessionStatus,
)

logger = logging.getLogger(__name__)

PARTICIPANT_STEPS = frozenset({
    NextStep.ASK_PARTICIPANT_AVAILABILITY,
    NextStep.PROPOSE_TIME_TO_PARTICIPANT,
    NextStep.PROCESS_ORGANIZER_CHANGE_REQUEST,
})

ORGANIZER_STEPS = frozenset({
    NextStep.PROPOSE_TIME_TO_ORGANIZER,
    NextStep.REQUEST_CLARIFICATION,
    NextStep.INFORM_ORGANIZER_OF_PARTICIPANT_CANCELLATION,
    NextStep.INFORM_ORGANIZER_OF_PARTICIPANT_CHANGE_REQUEST,
})

BROADCAST_STEPS = frozenset({
    NextStep.SEND_FINAL_CONFIRMATION,
    NextStep.PROCESS_CANCELLATION,
})

_OUTSTANDING = (ParticipantStatus.PENDING, ParticipantStatus.NUDGED_1, ParticipantStatus.NUDGED_2)


@dataclass
class OutboundPlan:
    """What to send for a decision and what to record once it is delivered."""
    next_step: NextStep
    recipients: List[str] = field(default_factory=list)
    body: str = ""
    send_as_group: bool = False
    new_status: Optional[SessionStatus] = None
    confirmed_datetime: Optional[datetime] = None
    clear_confirmed_datetime: bool = False
    request_participants: bool = False

    @property
    def sends(self) -> bool:
        return bool(self.recipients) and bool(self.body.strip())


class SchedulingWorkflow:
    """
    Maps NextStep decisions onto recipients and session status.

    Transition table:
        ask_participant_availability,
        propose_time_to_participant       -> participants only, individual,
                                             pending_participant_response
        process_organizer_change_request  -> participants only, individual,
                                             pending_participant_response,
                                             confirmed time cleared
        propose_time_to_organizer,
        request_clarification             -> organizer, pending_organizer_confirmation
        send_final_confirmation           -> organizer + participants, group, confirmed
        process_cancellation              -> organizer + participants, individual, cancelled
        inform_organizer_of_participant_cancellation
                                          -> organizer, escalated_to_organizer
        inform_organizer_of_participant_change_request
                                          -> organizer, status unchanged
        no_action_needed                  -> nothing
        error_cannot_schedule             -> nothing, error
    """

    def __init__(self, assistant_address: str):
        self.assistant_address = normalize_email(assistant_address)

    def validate_decision(self, decision: ActionDecision) -> ActionDecision:
        """
        Enforce the decision contract.

        No-action and error steps carry no recipients or body. Action steps
        missing either degrade to no_action_needed.
        """
        if not decision.next_step.sends_email:
            if decision.recipients or decision.email_body:
                logger.info(f"Clearing recipients/body on {decision.next_step.value} decision")
            return ActionDecision(
                next_step=decision.next_step,
                confirmed_datetime=decision.confirmed_datetime,
                reason=decision.reason,
            )

        if not decision.recipients or not (decision.email_body or "").strip():
            logger.warning(
                f"Decision {decision.next_step.value} missing recipients or body, treating as no action"
            )
            return ActionDecision.no_action(reason=f"incomplete_{decision.next_step.value}")
        return decision

    def filter_assistant(self, addresses: List[str]) -> List[str]:
        result = []
        for address in addresses:
            email = normalize_email(address)
            if not email or "@" not in email or email in result:
                continue
            if is_assistant_address(email, self.assistant_address):
                logger.warning("Decision engine addressed the assistant itself; dropped")
                continue
            result.append(email)
        return result

    def plan(
        self,
        session: SessionRecord,
        decision: ActionDecision,
        intent: Optional[IntentResult] = None,
    ) -> OutboundPlan:
        """
        Build the outbound plan for a validated decision.

        Args:
            session: Current session state
            decision: Decision after validate_decision
            intent: Router result, used for reschedule handling

        Returns:
            OutboundPlan; plan.sends is False when nothing may be sent
        """
        step = decision.next_step
        clear_confirmed = bool(
            intent
            and intent.intent == Intent.REQUEST_RESCHEDULE
            and session.status == SessionStatus.CONFIRMED
        )

        if step == NextStep.NO_ACTION_NEEDED:
            return OutboundPlan(next_step=step, clear_confirmed_datetime=clear_confirmed)
        if step == NextStep.ERROR_CANNOT_SCHEDULE:
            return OutboundPlan(next_step=step, new_status=SessionStatus.ERROR)

        engine_recipients = self.filter_assistant(decision.recipients)
        if not engine_recipients:
            logger.warning(f"No deliverable recipients for {step.value}; nothing will be sent")
            return OutboundPlan(next_step=NextStep.NO_ACTION_NEEDED)

        organizer = normalize_email(session.organizer_email)
        organizer_list = self.filter_assistant([organizer])
        participants = [
            email for email in self.filter_assistant(session.participant_emails)
            if email != organizer
        ]
        body = decision.email_body

        if step in PARTICIPANT_STEPS:
            selected = [email for email in engine_recipients if email in participants]
            if not selected and step == NextStep.PROCESS_ORGANIZER_CHANGE_REQUEST:
                selected = list(participants)
            if not selected:
                logger.warning(f"{step.value} named no session participants; nothing will be sent")
                return OutboundPlan(next_step=NextStep.NO_ACTION_NEEDED)
            return OutboundPlan(
                next_step=step,
                recipients=selected,
                body=body,
                send_as_group=False,
                new_status=SessionStatus.PENDING_PARTICIPANT_RESPONSE,
                clear_confirmed_datetime=(
                    clear_confirmed or step == NextStep.PROCESS_ORGANIZER_CHANGE_REQUEST
                ),
                request_participants=True,
            )

        if step in ORGANIZER_STEPS:
            if not organizer_list:
                return OutboundPlan(next_step=NextStep.NO_ACTION_NEEDED)
            return OutboundPlan(
                next_step=step,
                recipients=organizer_list,
                body=body,
                new_status=self._organizer_step_status(session, step),
                clear_confirmed_datetime=clear_confirmed,
            )

        # Broadcast steps
        everyone = organizer_list + [p for p in participants if p not in organizer_list]
        if step == NextStep.SEND_FINAL_CONFIRMATION:
            return OutboundPlan(
                next_step=step,
                recipients=everyone,
                body=body,
                send_as_group=True,
                new_status=SessionStatus.CONFIRMED,
                confirmed_datetime=extract_confirmed_datetime(body, decision.confirmed_datetime),
            )
        return OutboundPlan(
            next_step=step,
            recipients=everyone,
            body=body,
            send_as_group=False,
            new_status=SessionStatus.CANCELLED,
        )

    @staticmethod
    def _organizer_step_status(session: SessionRecord, step: NextStep) -> Optional[SessionStatus]:
        if step == NextStep.INFORM_ORGANIZER_OF_PARTICIPANT_CHANGE_REQUEST:
            return None
        if step == NextStep.INFORM_ORGANIZER_OF_PARTICIPANT_CANCELLATION:
            return SessionStatus.ESCALATED_TO_ORGANIZER
        asked_outstanding = [
            p for p in session.participants
            if p.status in _OUTSTANDING and p.last_request_sent_at is not None
        ]
        if asked_outstanding:
            return SessionStatus.PENDING_PARTICIPANT_RESPONSE
        return SessionStatus.PENDING_ORGANIZER_CONFIRMATION
