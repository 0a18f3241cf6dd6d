"""
In-memory test doubles for the scheduling pipeline.

FakeSender stands in for the Postmark transport and ScriptedDecisionEngine for
the Groq-backed engine; both record every call for assertions.
"""

import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from src.scheduling.base import DecisionEngine, MessageSender
from src.scheduling.models import (
    ActionDecision,
    Intent,
    IntentResult,
    MessageRecord,
    ParticipantState,
    SessionContext,
    SessionRecord,
    SessionStatus,
)

ASSISTANT = "scheduler@example.com"
ORGANIZER = "olivia@example.com"
PARTICIPANT_1 = "paul@example.com"
PARTICIPANT_2 = "pria@example.com"


class FakeSender(MessageSender):
    """Records outbound mail and returns sequential provider ids."""

    def __init__(self, fail_for: Iterable[str] = (), raise_for: Iterable[str] = ()):
        self.sent: List[Dict[str, Any]] = []
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)
        self._counter = 0

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
        addresses = [a.strip() for a in to.split(",")]
        if any(a in self.raise_for for a in addresses):
            raise ConnectionError("transport down")
        if any(a in self.fail_for for a in addresses):
            return None
        self._counter += 1
        message_id = f"pm-{self._counter:04d}"
        self.sent.append({
            "sender": sender,
            "to": to,
            "subject": subject,
            "text_body": text_body,
            "reply_to": reply_to,
            "headers": dict(headers or {}),
            "message_id": message_id,
        })
        return message_id

    def sent_to(self, address: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent if address in [a.strip() for a in m["to"].split(",")]]


DecisionScript = Union[ActionDecision, Callable[[SessionContext], ActionDecision]]


class ScriptedDecisionEngine(DecisionEngine):
    """
    Decision engine returning queued results.

    An empty intent queue yields Intent.UNKNOWN; an empty decision queue
    yields no_action_needed. Decisions may be callables taking the session
    context so scripts can address the live session.
    """

    def __init__(self):
        self.intents: List[IntentResult] = []
        self.decisions: List[DecisionScript] = []
        self.classify_calls: List[Dict[str, Any]] = []
        self.decide_calls: List[Dict[str, Any]] = []

    def script(self, intent: Intent, decision: Optional[DecisionScript] = None) -> None:
        self.intents.append(IntentResult(intent=intent))
        if decision is not None:
            self.decisions.append(decision)

    async def classify_intent(
        self,
        history: List[MessageRecord],
        latest: MessageRecord,
        context: SessionContext,
    ) -> IntentResult:
        self.classify_calls.append({"history": list(history), "latest": latest, "context": context})
        if not self.intents:
            return IntentResult(intent=Intent.UNKNOWN)
        return self.intents.pop(0)

    async def decide_action(
        self,
        history: List[MessageRecord],
        latest: MessageRecord,
        context: SessionContext,
        intent: IntentResult,
    ) -> ActionDecision:
        self.decide_calls.append({"history": list(history), "latest": latest, "context": context})
        if not self.decisions:
            return ActionDecision.no_action()
        decision = self.decisions.pop(0)
        return decision(context) if callable(decision) else decision


def _address_list(addresses: Iterable[str]) -> List[Dict[str, str]]:
    return [{"Email": a, "Name": "", "MailboxHash": ""} for a in addresses]


def inbound_payload(
    sender: str,
    to: Iterable[str],
    subject: str = "Project kickoff",
    body: str = "Hello",
    message_id: Optional[str] = None,
    cc: Iterable[str] = (),
    in_reply_to: Optional[str] = None,
    references: Iterable[str] = (),
    mailbox_hash: str = "",
    sender_name: str = "",
    date: str = "Mon, 19 Oct 2026 09:00:00 -0400",
    html_body: str = "",
) -> Dict[str, Any]:
    """Build a Postmark inbound webhook body."""
    to = list(to)
    cc = list(cc)
    message_id = message_id or f"in-{uuid.uuid4()}"
    headers = [{"Name": "Message-ID", "Value": f"<{message_id}@mail.example.com>"}]
    if in_reply_to:
        headers.append({"Name": "In-Reply-To", "Value": f"<{in_reply_to}>"})
    references = list(references)
    if references:
        headers.append({"Name": "References", "Value": " ".join(f"<{r}>" for r in references)})
    return {
        "From": sender,
        "FromName": sender_name,
        "FromFull": {"Email": sender, "Name": sender_name, "MailboxHash": ""},
        "To": ", ".join(to),
        "ToFull": _address_list(to),
        "Cc": ", ".join(cc),
        "CcFull": _address_list(cc),
        "OriginalRecipient": to[0] if to else "",
        "Subject": subject,
        "MessageID": message_id,
        "MailboxHash": mailbox_hash,
        "Date": date,
        "TextBody": body,
        "HtmlBody": html_body,
        "Headers": headers,
    }


def routed(session_id: str) -> str:
    """The assistant's reply-to address for a session."""
    local, domain = ASSISTANT.split("@")
    return f"{local}+{session_id}@{domain}"


async def seed_session(
    repository,
    participants: Iterable[ParticipantState] = (),
    status: SessionStatus = SessionStatus.NEW,
    organizer: str = ORGANIZER,
    topic: str = "Project kickoff",
    first_message_id: Optional[str] = None,
) -> SessionRecord:
    """Create a session with one organizer message."""
    participants = list(participants)
    first_message_id = first_message_id or f"seed-{uuid.uuid4()}"
    return await repository.create_session(
        {
            "organizer_email": organizer,
            "organizer_name": "Olivia Organizer",
            "participants": participants,
            "meeting_topic": topic,
            "status": status,
        },
        {
            "provider_message_id": first_message_id,
            "message_id_header": f"{first_message_id}@mail.example.com",
            "role": "human_organizer",
            "sender_email": organizer,
            "recipients": ", ".join([ASSISTANT] + [p.email for p in participants]),
            "subject": topic,
            "body_text": "Please find a time for us.",
        },
    )
