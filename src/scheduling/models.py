"""
Scheduling Domain Models

Defines the enums and record types shared by every stage of the scheduling
pipeline: the canonical inbound message, the persisted session and message
records, and the decisions produced by the decision engine.

Design Considerations:
- String enums so values persist and serialize without conversion
- Plain dataclasses decoupled from the storage layer
- Participant state kept as an ordered list keyed by email
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Any


class SessionStatus(str, Enum):
    """Coarse status of a scheduling session."""
    NEW = "new"
    PENDING_PARTICIPANT_RESPONSE = "pending_participant_response"
    PENDING_ORGANIZER_CONFIRMATION = "pending_organizer_confirmation"
    CONFIRMED = "confirmed"
    ESCALATED_TO_ORGANIZER = "escalated_to_organizer"
    CANCELLED = "cancelled"
    ERROR = "error"

    @property
    def is_closed(self) -> bool:
        """Closed sessions record inbound mail but never act on it."""
        return self in (SessionStatus.CANCELLED, SessionStatus.ERROR)


class ParticipantStatus(str, Enum):
    """Per-participant response and nudge state."""
    PENDING = "pending"
    RECEIVED = "received"
    NUDGED_1 = "nudged_1"
    NUDGED_2 = "nudged_2"
    ESCALATED = "escalated"


class MessageRole(str, Enum):
    """Author role of a stored message."""
    HUMAN_ORGANIZER = "human_organizer"
    HUMAN_PARTICIPANT = "human_participant"
    AI_AGENT = "ai_agent"


class Intent(str, Enum):
    """Router classification of the latest inbound message."""
    NEW_SCHEDULE_REQUEST = "new_schedule_request"
    PROVIDE_AVAILABILITY = "provide_availability"
    PROPOSE_ALTERNATIVE = "propose_alternative"
    CONFIRM_TIME = "confirm_time"
    REQUEST_CLARIFICATION_QUERY = "request_clarification_query"
    REQUEST_CANCELLATION = "request_cancellation"
    REQUEST_RESCHEDULE = "request_reschedule"
    SIMPLE_REPLY = "simple_reply"
    UNKNOWN = "unknown"

    @property
    def needs_action(self) -> bool:
        """Acknowledgements and unclassifiable mail skip the executor."""
        return self not in (Intent.SIMPLE_REPLY, Intent.UNKNOWN)


class NextStep(str, Enum):
    """Executor decision for the next workflow step."""
    REQUEST_CLARIFICATION = "request_clarification"
    ASK_PARTICIPANT_AVAILABILITY = "ask_participant_availability"
    PROPOSE_TIME_TO_ORGANIZER = "propose_time_to_organizer"
    PROPOSE_TIME_TO_PARTICIPANT = "propose_time_to_participant"
    SEND_FINAL_CONFIRMATION = "send_final_confirmation"
    PROCESS_CANCELLATION = "process_cancellation"
    INFORM_ORGANIZER_OF_PARTICIPANT_CANCELLATION = "inform_organizer_of_participant_cancellation"
    PROCESS_ORGANIZER_CHANGE_REQUEST = "process_organizer_change_request"
    INFORM_ORGANIZER_OF_PARTICIPANT_CHANGE_REQUEST = "inform_organizer_of_participant_change_request"
    NO_ACTION_NEEDED = "no_action_needed"
    ERROR_CANNOT_SCHEDULE = "error_cannot_schedule"

    @property
    def sends_email(self) -> bool:
        return self not in (NextStep.NO_ACTION_NEEDED, NextStep.ERROR_CANNOT_SCHEDULE)


@dataclass
class EmailAddress:
    """Address with optional display name."""
    email: str
    name: Optional[str] = None


@dataclass
class CanonicalMessage:
    """
    Provider-independent view of an inbound email.

    Produced by the gateway from a raw webhook event; every downstream stage
    works on this record only.
    """
    sender: EmailAddress
    to: List[EmailAddress]
    cc: List[EmailAddress]
    subject: str
    body_text: str
    body_html: Optional[str]
    provider_message_id: str
    message_id_header: str
    in_reply_to: Optional[str] = None
    references: List[str] = field(default_factory=list)
    routing_token: Optional[str] = None
    original_recipient: Optional[str] = None
    date_header: Optional[str] = None
    raw_to: str = ""
    raw_cc: str = ""
    raw_payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def recipients(self) -> List[EmailAddress]:
        return list(self.to) + list(self.cc)


@dataclass
class ParticipantState:
    """Tracked state of a single participant within a session."""
    email: str
    name: Optional[str] = None
    status: ParticipantStatus = ParticipantStatus.PENDING
    last_request_sent_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "name": self.name,
            "status": self.status.value,
            "last_request_sent_at": (
                self.last_request_sent_at.isoformat() if self.last_request_sent_at else None
            ),
        }


@dataclass
class SessionRecord:
    """Snapshot of a persisted scheduling session."""
    session_id: str
    organizer_email: str
    organizer_name: Optional[str]
    status: SessionStatus
    participants: List[ParticipantState] = field(default_factory=list)
    meeting_topic: Optional[str] = None
    meeting_duration: Optional[str] = None
    meeting_location: Optional[str] = None
    is_virtual: Optional[bool] = None
    timezones: Dict[str, str] = field(default_factory=dict)
    enrichment_confidence: Dict[str, float] = field(default_factory=dict)
    confirmed_datetime: Optional[datetime] = None
    webhook_target_address: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def participant(self, email: str) -> Optional[ParticipantState]:
        key = email.strip().lower()
        for entry in self.participants:
            if entry.email.lower() == key:
                return entry
        return None

    @property
    def participant_emails(self) -> List[str]:
        return [p.email for p in self.participants]


@dataclass
class MessageRecord:
    """Snapshot of a persisted session message."""
    id: int
    session_id: str
    provider_message_id: str
    message_id_header: Optional[str]
    role: MessageRole
    sender_email: str
    recipients: str
    subject: Optional[str]
    body_text: Optional[str]
    in_reply_to: Optional[str] = None
    references: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class IntentResult:
    """Router output."""
    intent: Intent
    cancelling_participant_email: Optional[str] = None


@dataclass
class ActionDecision:
    """Executor output."""
    next_step: NextStep
    recipients: List[str] = field(default_factory=list)
    email_body: str = ""
    confirmed_datetime: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def no_action(cls, reason: Optional[str] = None) -> "ActionDecision":
        return cls(next_step=NextStep.NO_ACTION_NEEDED, reason=reason)


@dataclass
class ParticipantContext:
    email: str
    name: Optional[str]
    status: str
    last_request_sent_at: Optional[str] = None


@dataclass
class SessionContext:
    """
    Typed view of a session handed to the decision engine.

    Only the engine adapter serializes it; the rest of the pipeline treats
    it as a plain record.
    """
    session_id: str
    organizer_email: str
    organizer_name: Optional[str]
    participants: List[ParticipantContext]
    status: str
    meeting_topic: Optional[str] = None
    meeting_duration: Optional[str] = None
    meeting_location: Optional[str] = None
    is_virtual: Optional[bool] = None
    timezones: Dict[str, str] = field(default_factory=dict)
    confirmed_datetime: Optional[str] = None
    latest_sender_email: Optional[str] = None
    latest_sender_role: Optional[str] = None

    @classmethod
    def from_session(
        cls,
        session: SessionRecord,
        latest_sender_email: Optional[str] = None,
        latest_sender_role: Optional[MessageRole] = None,
    ) -> "SessionContext":
        return cls(
            session_id=session.session_id,
            organizer_email=session.organizer_email,
            organizer_name=session.organizer_name,
            participants=[
                ParticipantContext(
                    email=p.email,
                    name=p.name,
                    status=p.status.value,
                    last_request_sent_at=(
                        p.last_request_sent_at.isoformat() if p.last_request_sent_at else None
                    ),
                )
                for p in session.participants
            ],
            status=session.status.value,
            meeting_topic=session.meeting_topic,
            meeting_duration=session.meeting_duration,
            meeting_location=session.meeting_location,
            is_virtual=session.is_virtual,
            timezones=dict(session.timezones),
            confirmed_datetime=(
                session.confirmed_datetime.isoformat() if session.confirmed_datetime else None
            ),
            latest_sender_email=latest_sender_email,
            latest_sender_role=latest_sender_role.value if latest_sender_role else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ThreadingContext:
    """Threading headers for an outbound reply."""
    in_reply_to: Optional[str] = None
    references: List[str] = field(default_factory=list)


@dataclass
class SendResult:
    """Outcome of a threaded send across one or more recipients."""
    status: str
    message_id: Optional[str] = None
    delivered: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    # recipient -> provider id; a group send maps every recipient to one id
    message_ids: Dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return bool(self.delivered) and self.message_id is not None


@dataclass
class ProcessingOutcome:
    """Result of handling one inbound webhook event."""
    status: str
    session_id: Optional[str] = None
    detail: Optional[str] = None
    next_step: Optional[str] = None
    message_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class NudgeSummary:
    """Counters for one nudge sweep."""
    sessions_checked: int = 0
    reminders_sent: int = 0
    escalations: int = 0
    failures: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)
