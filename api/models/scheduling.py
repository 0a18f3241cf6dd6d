"""
Scheduling API Models

Response models for the webhook, nudge and session inspection endpoints.

Design Considerations:
- Webhook acknowledgements always carry a status string
- Session views expose participant state without internal confidence data
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from src.scheduling.models import MessageRecord, SessionRecord


class WebhookAck(BaseModel):
    """Acknowledgement returned for every inbound webhook delivery."""

    status: str = Field(..., description="Processing outcome")
    session_id: Optional[str] = Field(None, description="Session the message was attached to")
    next_step: Optional[str] = Field(None, description="Workflow step taken, when one was decided")
    message_id: Optional[str] = Field(None, description="Provider id of the message or outbound reply")
    detail: Optional[str] = Field(None, description="Additional outcome detail")


class NudgeSweepResponse(BaseModel):
    """Counters from one nudge sweep."""

    status: str = Field(default="success")
    sessions_checked: int = Field(..., description="Sessions examined")
    reminders_sent: int = Field(..., description="Reminder emails delivered")
    escalations: int = Field(..., description="Participants escalated to the organizer")
    failures: int = Field(..., description="Sends or sessions that failed")


class ParticipantView(BaseModel):
    email: str
    name: Optional[str] = None
    status: str
    last_request_sent_at: Optional[datetime] = None


class SessionView(BaseModel):
    """Read-only view of a scheduling session."""

    session_id: str
    status: str
    organizer_email: str
    organizer_name: Optional[str] = None
    participants: List[ParticipantView] = Field(default_factory=list)
    meeting_topic: Optional[str] = None
    meeting_duration: Optional[str] = None
    meeting_location: Optional[str] = None
    is_virtual: Optional[bool] = None
    timezones: dict = Field(default_factory=dict)
    confirmed_datetime: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: SessionRecord) -> "SessionView":
        return cls(
            session_id=record.session_id,
            status=record.status.value,
            organizer_email=record.organizer_email,
            organizer_name=record.organizer_name,
            participants=[
                ParticipantView(
                    email=p.email,
                    name=p.name,
                    status=p.status.value,
                    last_request_sent_at=p.last_request_sent_at,
                )
                for p in record.participants
            ],
            meeting_topic=record.meeting_topic,
            meeting_duration=record.meeting_duration,
            meeting_location=record.meeting_location,
            is_virtual=record.is_virtual,
            timezones=record.timezones,
            confirmed_datetime=record.confirmed_datetime,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class MessageView(BaseModel):
    """One message of a session's audit trail."""

    id: int
    provider_message_id: str
    role: str
    sender_email: str
    recipients: str
    subject: Optional[str] = None
    body_text: Optional[str] = None
    in_reply_to: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: MessageRecord) -> "MessageView":
        return cls(
            id=record.id,
            provider_message_id=record.provider_message_id,
            role=record.role.value,
            sender_email=record.sender_email,
            recipients=record.recipients,
            subject=record.subject,
            body_text=record.body_text,
            in_reply_to=record.in_reply_to,
            created_at=record.created_at,
        )


class SessionMessagesResponse(BaseModel):
    session_id: str
    messages: List[MessageView]
    total: int
