"""
Loop Guard

Detects inbound mail that the assistant sent to itself without a valid
session routing token. Such messages are quarantined for forensics and never
reach session resolution or the decision engine.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from src.scheduling.addressing import is_assistant_address, is_valid_session_token
from src.scheduling.base import SessionRepository
from src.scheduling.models import CanonicalMessage

logger = logging.getLogger(__name__)


@dataclass
class LoopCheck:
    blocked: bool
    reason: Optional[str] = None


class LoopGuard:
    """Blocks self-originated messages that carry no valid routing token."""

    def __init__(self, assistant_address: str, repository: SessionRepository):
        self.assistant_address = assistant_address
        self.repository = repository

    def check(self, message: CanonicalMessage) -> LoopCheck:
        if not is_assistant_address(message.sender.email, self.assistant_address):
            return LoopCheck(blocked=False)
        if is_valid_session_token(message.routing_token):
            return LoopCheck(blocked=False)
        return LoopCheck(blocked=True, reason="sender_is_assistant_without_routing_token")

    async def quarantine(self, message: CanonicalMessage) -> None:
        """
        Persist a blocked message to the discarded-mail table.

        A storage failure is logged; the message stays blocked either way.
        """
        record = {
            "provider_message_id": message.provider_message_id,
            "subject": message.subject,
            "from_email": message.sender.email,
            "to_recipients": message.raw_to,
            "cc_recipients": message.raw_cc,
            "in_reply_to_header": message.in_reply_to,
            "body_text": message.body_text,
            "full_payload": message.raw_payload,
        }
        try:
            stored = await self.repository.quarantine_message(record)
        except Exception as e:
            logger.error(f"Failed to quarantine agent email {message.provider_message_id}: {str(e)}")
            stored = False
        if stored:
            logger.warning(f"Loop detected, discarded message {message.provider_message_id}")
        else:
            logger.info(f"Loop message {message.provider_message_id} not stored again")
