"""
Scheduling Capability Contracts

Defines the abstract capabilities the scheduling pipeline depends on. Concrete
implementations are injected through constructors so the pipeline can run
against a real provider, database and language model, or against test fakes.

Design Considerations:
- Narrow contracts covering only what the pipeline calls
- Async signatures throughout so implementations may perform I/O
- NotImplementedError for every unimplemented operation
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Any

from src.scheduling.models import (
    ActionDecision,
    IntentResult,
    MessageRecord,
    ParticipantState,
    ParticipantStatus,
    SessionContext,
    SessionRecord,
    SessionStatus,
)

logger = logging.getLogger(__name__)


class MessageSender:
    """
    Outbound transport contract.

    A sender delivers a single fully-addressed email and reports the provider
    message id. Transport failures are reported by returning None rather than
    raising.
    """

    async def send_email(
        self,
        sender: str,
        to: str,
        subject: str,
        text_body: str,
        reply_to: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        html_body: Optional[str] = None,
    ) -> Optional[str]:
        """
        Send one email.

        Args:
            sender: From address
            to: Comma-separated recipient addresses
            subject: Subject line
            text_body: Plain-text body
            reply_to: Reply-To address
            headers: Additional headers (threading, tags)
            html_body: Optional HTML body

        Returns:
            Provider message id on success, None on failure

        Raises:
            NotImplementedError: Must be implemented by concrete senders
        """
        raise NotImplementedError("Must implement send_email")


class SessionRepository:
    """
    Durable store contract for sessions, messages and quarantined loop mail.

    Every mutation is a partial update: participant entries change one at a
    time and session updates touch only the named fields.
    """

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        raise NotImplementedError("Must implement get_session")

    async def create_session(
        self, initial: Dict[str, Any], first_message: Dict[str, Any]
    ) -> SessionRecord:
        """Create a session and its first message in one transaction."""
        raise NotImplementedError("Must implement create_session")

    async def update_session(self, session_id: str, fields: Dict[str, Any]) -> bool:
        raise NotImplementedError("Must implement update_session")

    async def update_participant(
        self,
        session_id: str,
        email: str,
        status: Optional[ParticipantStatus] = None,
        last_request_sent_at: Optional[datetime] = None,
        expected_status: Optional[ParticipantStatus] = None,
    ) -> Optional[ParticipantState]:
        """
        Update a single participant entry atomically.

        Returns:
            The updated entry, or None when the participant is unknown or the
            expected status no longer holds
        """
        raise NotImplementedError("Must implement update_participant")

    async def add_message(
        self, session_id: str, message: Dict[str, Any]
    ) -> Optional[MessageRecord]:
        raise NotImplementedError("Must implement add_message")

    async def list_messages(self, session_id: str) -> List[MessageRecord]:
        raise NotImplementedError("Must implement list_messages")

    async def find_session_id_by_message_reference(self, reference: str) -> Optional[str]:
        raise NotImplementedError("Must implement find_session_id_by_message_reference")

    async def message_exists(self, provider_message_id: str) -> bool:
        raise NotImplementedError("Must implement message_exists")

    async def list_sessions_by_status(self, status: SessionStatus) -> List[SessionRecord]:
        raise NotImplementedError("Must implement list_sessions_by_status")

    async def quarantine_message(self, record: Dict[str, Any]) -> bool:
        """Store a blocked message; False when its provider id is already quarantined."""
        raise NotImplementedError("Must implement quarantine_message")


class DecisionEngine:
    """
    Two-stage decision contract: intent classification followed by action
    selection. Implementations must never raise; failures degrade to an
    unknown intent or a no-action decision.
    """

    async def classify_intent(
        self,
        history: List[MessageRecord],
        latest: MessageRecord,
        context: SessionContext,
    ) -> IntentResult:
        raise NotImplementedError("Must implement classify_intent")

    async def decide_action(
        self,
        history: List[MessageRecord],
        latest: MessageRecord,
        context: SessionContext,
        intent: IntentResult,
    ) -> ActionDecision:
        raise NotImplementedError("Must implement decide_action")


class EventSink:
    """Optional observer for pipeline events (tracing, analytics)."""

    def record(self, event: str, session_id: Optional[str] = None, **attributes: Any) -> None:
        raise NotImplementedError("Must implement record")


class LoggingEventSink(EventSink):
    """Default sink that writes events to the module logger at debug level."""

    def record(self, event: str, session_id: Optional[str] = None, **attributes: Any) -> None:
        logger.debug(f"event={event} session={session_id} attributes={attributes}")
