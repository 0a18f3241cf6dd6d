"""
Scheduling Processor

Orchestrates the handling of one inbound webhook event: normalization, loop
containment, de-duplication, session resolution, persistence, enrichment,
response tracking, the two-stage decision, and the outbound send.

Design Considerations:
- process_inbound never raises; every path returns a ProcessingOutcome
- The triggering message is persisted before any decision is made
- Assistant messages persisted only for delivered sends
- Session fields and participant entries updated through partial writes only
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from src.scheduling.addressing import build_references, is_assistant_address, normalize_email
from src.scheduling.base import (
    DecisionEngine,
    EventSink,
    LoggingEventSink,
    SessionRepository,
)
from src.scheduling.enrichment import MeetingDetailsDetector, merge_details
from src.scheduling.exceptions import (
    DuplicateMessageError,
    IgnorableInputError,
    SessionUnavailableError,
)
from src.scheduling.gateway import EmailGateway, reply_subject
from src.scheduling.loop_guard import LoopGuard
from src.scheduling.models import (
    CanonicalMessage,
    MessageRecord,
    MessageRole,
    ProcessingOutcome,
    SendResult,
    SessionContext,
    SessionRecord,
    SessionStatus,
    ThreadingContext,
)
from src.scheduling.resolver import SessionResolver, inbound_message_fields
from src.scheduling.tracker import ParticipantResponseTracker
from src.scheduling.workflow import OutboundPlan, SchedulingWorkflow

logger = logging.getLogger(__name__)

# Statuses in which a participant reply waits until every participant has replied
GATED_STATUSES = frozenset({
    SessionStatus.NEW,
    SessionStatus.PENDING_PARTICIPANT_RESPONSE,
    SessionStatus.ESCALATED_TO_ORGANIZER,
})


class SchedulingProcessor:
    """
    Per-request pipeline for inbound scheduling mail.

    Components are injected so the same pipeline runs against Postmark, SQL
    and Groq in production and against in-memory fakes in tests.

    Outcome statuses:
        ignored_invalid_payload, ignored_missing_sender,
        discarded_agent_loop_detected, duplicate, session_unavailable,
        waiting_for_participants, session_closed, no_action, send_failed,
        processed, error
    """

    def __init__(
        self,
        repository: SessionRepository,
        gateway: EmailGateway,
        decision_engine: DecisionEngine,
        assistant_address: str,
        detector: Optional[MeetingDetailsDetector] = None,
        event_sink: Optional[EventSink] = None,
    ):
        self.repository = repository
        self.gateway = gateway
        self.decision_engine = decision_engine
        self.assistant_address = normalize_email(assistant_address)
        self.detector = detector or MeetingDetailsDetector()
        self.events = event_sink or LoggingEventSink()

        self.loop_guard = LoopGuard(self.assistant_address, repository)
        self.resolver = SessionResolver(repository, self.assistant_address, self.detector)
        self.tracker = ParticipantResponseTracker(repository)
        self.workflow = SchedulingWorkflow(self.assistant_address)

    async def process_inbound(self, raw_event: Any) -> ProcessingOutcome:
        """
        Handle one inbound webhook event.

        Args:
            raw_event: Decoded webhook JSON

        Returns:
            ProcessingOutcome describing what happened; never raises
        """
        try:
            return await self._process(raw_event)
        except Exception as e:
            logger.error(f"Unhandled error processing inbound email: {str(e)}", exc_info=True)
            return ProcessingOutcome(status="error", detail=e.__class__.__name__)

    async def _process(self, raw_event: Any) -> ProcessingOutcome:
        try:
            message = self.gateway.receive_inbound(raw_event)
        except IgnorableInputError as e:
            logger.warning(f"Ignoring inbound event: {str(e)}")
            return ProcessingOutcome(status=e.reason, detail=str(e))

        loop_check = self.loop_guard.check(message)
        if loop_check.blocked:
            await self.loop_guard.quarantine(message)
            self.events.record("loop_discarded", message_id=message.provider_message_id)
            return ProcessingOutcome(status="discarded_agent_loop_detected", detail=loop_check.reason)

        if await self.repository.message_exists(message.provider_message_id):
            logger.info(f"Duplicate delivery of {message.provider_message_id}; skipping")
            return ProcessingOutcome(status="duplicate", message_id=message.provider_message_id)

        if is_assistant_address(message.sender.email, self.assistant_address):
            return await self._record_assistant_copy(message)

        try:
            resolved = await self.resolver.resolve(message)
        except DuplicateMessageError:
            return ProcessingOutcome(status="duplicate", message_id=message.provider_message_id)
        except SessionUnavailableError as e:
            logger.error(f"Session unavailable for {message.provider_message_id}: {str(e)}")
            return ProcessingOutcome(status="session_unavailable", detail=str(e))
        except Exception as e:
            logger.error(f"Session resolution failed: {str(e)}", exc_info=True)
            return ProcessingOutcome(status="session_unavailable", detail=e.__class__.__name__)

        session = resolved.session
        session_id = session.session_id
        role = self._role_for(session, message.sender.email)
        self.events.record("session_resolved", session_id, method=resolved.method, is_new=resolved.is_new)

        if not resolved.is_new:
            stored = await self.repository.add_message(
                session_id, inbound_message_fields(message, role)
            )
            if stored is None:
                return ProcessingOutcome(
                    status="duplicate", session_id=session_id, message_id=message.provider_message_id
                )
            session = await self._apply_enrichment(session, message)

        if role == MessageRole.HUMAN_PARTICIPANT:
            await self.tracker.record_reply(session, message.sender.email)
            session = await self.repository.get_session(session_id) or session

        if session.status.is_closed:
            logger.info(f"Session {session_id} is {session.status.value}; message recorded only")
            return ProcessingOutcome(status="session_closed", session_id=session_id)

        if (
            role != MessageRole.HUMAN_ORGANIZER
            and session.status in GATED_STATUSES
            and not self.tracker.gate_open(session)
        ):
            outstanding = len(self.tracker.outstanding(session))
            logger.info(f"Session {session_id} waiting on {outstanding} participant(s)")
            self.events.record("gate_closed", session_id, outstanding=outstanding)
            return ProcessingOutcome(status="waiting_for_participants", session_id=session_id)

        return await self._decide_and_act(session, message, role)

    async def _decide_and_act(
        self, session: SessionRecord, message: CanonicalMessage, role: MessageRole
    ) -> ProcessingOutcome:
        session_id = session.session_id
        history = await self.repository.list_messages(session_id)
        latest = self._find_latest(history, message)
        if latest is None:
            logger.error(f"Inbound message {message.provider_message_id} missing from session {session_id}")
            return ProcessingOutcome(status="error", session_id=session_id, detail="message_not_persisted")

        context = SessionContext.from_session(session, message.sender.email, role)
        intent = await self.decision_engine.classify_intent(history, latest, context)
        self.events.record("intent_classified", session_id, intent=intent.intent.value)

        if not intent.intent.needs_action:
            return ProcessingOutcome(status="no_action", session_id=session_id, detail=intent.intent.value)

        decision = await self.decision_engine.decide_action(history, latest, context, intent)
        decision = self.workflow.validate_decision(decision)
        plan = self.workflow.plan(session, decision, intent)
        self.events.record("action_decided", session_id, next_step=plan.next_step.value)

        if not plan.sends:
            await self._apply_status(session_id, plan)
            return ProcessingOutcome(
                status="no_action", session_id=session_id, next_step=plan.next_step.value
            )

        subject = message.subject if message.subject != "(no subject)" else session.meeting_topic
        threading = ThreadingContext(
            in_reply_to=message.message_id_header,
            references=list(message.references),
        )
        result = await self.gateway.send_threaded(
            subject=reply_subject(subject),
            body=plan.body,
            recipients=plan.recipients,
            threading=threading,
            routing_token=session_id,
            send_as_group=plan.send_as_group,
        )

        if not result.delivered:
            logger.error(f"Send failed for session {session_id} step {plan.next_step.value}")
            self.events.record("send_failed", session_id, next_step=plan.next_step.value)
            return ProcessingOutcome(
                status="send_failed", session_id=session_id, next_step=plan.next_step.value
            )

        await self._persist_outbound(session_id, reply_subject(subject), plan, result, threading)
        await self._apply_status(session_id, plan)

        if plan.request_participants:
            participants = set(session.participant_emails)
            await self.tracker.mark_requested(
                session_id, [r for r in result.delivered if r in participants]
            )

        logger.info(
            f"Session {session_id}: {plan.next_step.value} sent to {len(result.delivered)} recipient(s)"
        )
        return ProcessingOutcome(
            status="processed",
            session_id=session_id,
            next_step=plan.next_step.value,
            message_id=result.message_id,
        )

    async def _record_assistant_copy(self, message: CanonicalMessage) -> ProcessingOutcome:
        """
        Record a copy of the assistant's own mail that carries a routing token.

        The copy is attached to its session as assistant mail and never acted
        on. A token that names no session is contained like any other loop.
        """
        session = await self.repository.get_session(message.routing_token.strip())
        if session is None:
            await self.loop_guard.quarantine(message)
            return ProcessingOutcome(status="discarded_agent_loop_detected", detail="unknown_routing_token")

        await self.repository.add_message(
            session.session_id, inbound_message_fields(message, MessageRole.AI_AGENT)
        )
        logger.info(f"Recorded assistant copy {message.provider_message_id} in session {session.session_id}")
        return ProcessingOutcome(status="no_action", session_id=session.session_id, detail="assistant_copy")

    def _role_for(self, session: SessionRecord, sender_email: str) -> MessageRole:
        if normalize_email(sender_email) == normalize_email(session.organizer_email):
            return MessageRole.HUMAN_ORGANIZER
        return MessageRole.HUMAN_PARTICIPANT

    @staticmethod
    def _find_latest(history: List[MessageRecord], message: CanonicalMessage) -> Optional[MessageRecord]:
        for record in reversed(history):
            if record.provider_message_id == message.provider_message_id:
                return record
        return None

    async def _apply_enrichment(
        self, session: SessionRecord, message: CanonicalMessage
    ) -> SessionRecord:
        try:
            update = merge_details(session, self.detector.detect(message), message.sender.email)
            if not update:
                return session
            await self.repository.update_session(session.session_id, update)
        except Exception as e:
            logger.warning(f"Enrichment update failed for session {session.session_id}: {str(e)}")
            return session
        for name, value in update.items():
            setattr(session, name, value)
        return session

    async def _persist_outbound(
        self,
        session_id: str,
        subject: str,
        plan: OutboundPlan,
        result: SendResult,
        threading: ThreadingContext,
    ) -> None:
        references = " ".join(build_references(threading.references, threading.in_reply_to)) or None
        grouped: "OrderedDict[str, List[str]]" = OrderedDict()
        for recipient in result.delivered:
            provider_id = result.message_ids.get(recipient) or result.message_id
            grouped.setdefault(provider_id, []).append(recipient)

        for provider_id, recipients in grouped.items():
            record: Dict[str, Any] = {
                "provider_message_id": provider_id,
                "message_id_header": provider_id,
                "role": MessageRole.AI_AGENT,
                "sender_email": self.assistant_address,
                "recipients": ", ".join(recipients),
                "subject": subject,
                "body_text": plan.body,
                "in_reply_to": threading.in_reply_to,
                "references": references,
            }
            try:
                stored = await self.repository.add_message(session_id, record)
                if stored is None:
                    logger.warning(f"Outbound message {provider_id} was already stored")
            except Exception as e:
                logger.error(
                    f"Failed to persist outbound message {provider_id} for session {session_id}: {str(e)}"
                )

    async def _apply_status(self, session_id: str, plan: OutboundPlan) -> None:
        fields: Dict[str, Any] = {}
        if plan.new_status is not None:
            fields["status"] = plan.new_status
        if plan.confirmed_datetime is not None:
            fields["confirmed_datetime"] = plan.confirmed_datetime
        elif plan.clear_confirmed_datetime:
            fields["confirmed_datetime"] = None
        if not fields:
            return
        try:
            await self.repository.update_session(session_id, fields)
        except Exception as e:
            logger.error(f"Failed to update session {session_id}: {str(e)}")
            return
        if plan.new_status is not None:
            self.events.record("status_changed", session_id, status=plan.new_status.value)
            logger.info(f"Session {session_id} status -> {plan.new_status.value}")
