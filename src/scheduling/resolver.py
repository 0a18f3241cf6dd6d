"""
Session Resolver

Maps an inbound message onto an existing scheduling session or creates a new
one. Resolution follows a strict order: routing token, then In-Reply-To, then
a new session. A valid routing token always wins, even when the message
belongs to a different thread.

Design Considerations:
- Unknown tokens and unknown references fall through to the next step
- New sessions are created atomically with their first message
- Participants exclude the sender and the assistant in every address form
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Any

from src.scheduling.addressing import (
    clean_message_id,
    is_assistant_address,
    is_valid_session_token,
    mask_email,
    normalize_email,
    thread_key,
)
from src.scheduling.base import SessionRepository
from src.scheduling.enrichment import MeetingDetailsDetector, merge_details
from src.scheduling.exceptions import DuplicateMessageError, SessionUnavailableError
from src.scheduling.models import (
    CanonicalMessage,
    EmailAddress,
    MessageRole,
    ParticipantState,
    ParticipantStatus,
    SessionRecord,
    SessionStatus,
)

logger = logging.getLogger(__name__)

_PARTICIPANTS_BLOCK = re.compile(
    r"Participants?:\s*\n?([\s\S]*?)(?:\n\s*\n|Thanks|Best regards|$)", re.I
)
_EMAIL_IN_LINE = re.compile(r"[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}")


@dataclass
class ResolvedSession:
    session: SessionRecord
    is_new: bool
    method: str


def extract_participants(
    message: CanonicalMessage, assistant_address: str
) -> List[EmailAddress]:
    """
    Derive the participant list for a new session.

    Uses To and Cc minus the sender and the assistant. When that leaves
    nobody, falls back to a "Participants:" block in the body.

    Returns:
        De-duplicated participants in first-seen order
    """
    sender = normalize_email(message.sender.email)
    seen = set()
    result: List[EmailAddress] = []

    def consider(address: EmailAddress) -> None:
        email = normalize_email(address.email)
        if not email or email == sender or email in seen:
            return
        if is_assistant_address(email, assistant_address):
            return
        seen.add(email)
        result.append(EmailAddress(email=email, name=address.name))

    for address in message.recipients:
        consider(address)

    if not result and message.body_text:
        match = _PARTICIPANTS_BLOCK.search(message.body_text)
        if match:
            for line in match.group(1).splitlines():
                line = line.strip().lstrip("-*").strip()
                if "@" not in line:
                    continue
                found = _EMAIL_IN_LINE.search(line)
                if found:
                    consider(EmailAddress(email=found.group(0)))

    return result


class SessionResolver:
    """
    Resolves inbound messages to sessions.

    The resolver persists the inbound message only when it creates a
    session; attaching a message to an existing session is the caller's job.
    """

    def __init__(
        self,
        repository: SessionRepository,
        assistant_address: str,
        detector: Optional[MeetingDetailsDetector] = None,
    ):
        self.repository = repository
        self.assistant_address = normalize_email(assistant_address)
        self.detector = detector or MeetingDetailsDetector()

    async def resolve(self, message: CanonicalMessage) -> ResolvedSession:
        """
        Resolve or create the session for an inbound message.

        Raises:
            SessionUnavailableError: No existing session matched and a new one
                could not be created
            DuplicateMessageError: The message was stored concurrently by a
                redelivery
        """
        token = (message.routing_token or "").strip()
        if is_valid_session_token(token):
            session = await self.repository.get_session(token)
            if session:
                logger.info(f"Resolved session {session.session_id} by routing token")
                return ResolvedSession(session=session, is_new=False, method="routing_token")
            logger.warning(f"Routing token {token} matches no session")
        elif token:
            logger.info(f"Ignoring malformed routing token {token!r}")

        reference = clean_message_id(message.in_reply_to)
        if reference:
            session_id = await self.repository.find_session_id_by_message_reference(reference)
            if session_id:
                session = await self.repository.get_session(session_id)
                if session:
                    logger.info(f"Resolved session {session_id} by In-Reply-To {thread_key(reference)}")
                    return ResolvedSession(session=session, is_new=False, method="in_reply_to")

        session = await self._create_session(message)
        return ResolvedSession(session=session, is_new=True, method="new_session")

    async def _create_session(self, message: CanonicalMessage) -> SessionRecord:
        participants = extract_participants(message, self.assistant_address)
        details = self.detector.detect(message)
        enrichment = merge_details(None, details, message.sender.email)

        initial: Dict[str, Any] = {
            "organizer_email": message.sender.email,
            "organizer_name": message.sender.name,
            "participants": [
                ParticipantState(email=p.email, name=p.name, status=ParticipantStatus.PENDING)
                for p in participants
            ],
            "meeting_topic": message.subject,
            "status": SessionStatus.NEW,
            "webhook_target_address": message.original_recipient or self._first_assistant_recipient(message),
        }
        initial.update(enrichment)

        try:
            session = await self.repository.create_session(
                initial, inbound_message_fields(message, MessageRole.HUMAN_ORGANIZER)
            )
        except DuplicateMessageError:
            raise
        except Exception as e:
            logger.error(f"Failed to create session: {str(e)}", exc_info=True)
            raise SessionUnavailableError("Could not create session") from e

        if not participants:
            logger.info(f"Session {session.session_id} created with no participants")
        logger.info(
            f"New session {session.session_id} for organizer {mask_email(message.sender.email)}"
        )
        return session

    def _first_assistant_recipient(self, message: CanonicalMessage) -> Optional[str]:
        for address in message.recipients:
            if is_assistant_address(address.email, self.assistant_address):
                return address.email
        return None


def inbound_message_fields(message: CanonicalMessage, role: MessageRole) -> Dict[str, Any]:
    """Message fields for persisting an inbound email."""
    return {
        "provider_message_id": message.provider_message_id,
        "message_id_header": message.message_id_header,
        "role": role,
        "sender_email": message.sender.email,
        "recipients": ", ".join(a.email for a in message.recipients),
        "subject": message.subject,
        "body_text": message.body_text,
        "body_html": message.body_html,
        "in_reply_to": message.in_reply_to,
        "references": " ".join(message.references) or None,
    }
