"""
Database Models for Scheduling Sessions

Defines the persisted state of the scheduling assistant: one row per meeting
negotiation, its immutable message history, and a forensic table for
quarantined self-originated mail.

Design Considerations:
- Session id doubles as the email routing token
- Participant state stored as a JSON list on the session row
- Messages ordered by (created_at, id) with the integer id as tie-breaker
- Provider message ids unique across all sessions for idempotent redelivery
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, Integer, JSON
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SchedulingSession(Base):
    """
    A single meeting negotiation.

    Holds the organizer, the ordered participant status list and the
    advisory meeting metadata collected from inbound mail.
    """
    __tablename__ = "scheduling_sessions"

    session_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    organizer_email = Column(String(255), nullable=False, index=True)
    organizer_name = Column(String(255), nullable=True)

    # [{email, name, status, last_request_sent_at}]
    participant_status = Column(JSON, nullable=False, default=list)

    meeting_topic = Column(String(500), nullable=True)
    meeting_duration = Column(String(100), nullable=True)
    meeting_location = Column(String(500), nullable=True)
    is_virtual = Column(Boolean, nullable=True)
    timezones = Column(JSON, nullable=False, default=dict)
    enrichment_confidence = Column(JSON, nullable=False, default=dict)

    status = Column(String(50), nullable=False, default="new", index=True)
    confirmed_datetime = Column(DateTime(timezone=True), nullable=True)
    webhook_target_address = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    messages = relationship(
        "SessionMessage",
        back_populates="session",
        cascade="all, delete-orphan",
    )


class SessionMessage(Base):
    """Immutable record of one inbound or outbound email within a session."""
    __tablename__ = "session_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(
        String(36),
        ForeignKey("scheduling_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider_message_id = Column(String(255), unique=True, nullable=False, index=True)
    message_id_header = Column(String(500), nullable=True, index=True)
    role = Column(String(30), nullable=False)
    sender_email = Column(String(255), nullable=False)
    recipients = Column(Text, nullable=False, default="")
    subject = Column(String(1000), nullable=True)
    body_text = Column(Text, nullable=True)
    body_html = Column(Text, nullable=True)
    in_reply_to = Column(String(500), nullable=True)
    references = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    session = relationship("SchedulingSession", back_populates="messages")


class DiscardedAgentEmail(Base):
    """Quarantined message that originated from the assistant's own address."""
    __tablename__ = "discarded_agent_emails"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_message_id = Column(String(255), unique=True, nullable=True)
    subject = Column(String(1000), nullable=True)
    from_email = Column(String(255), nullable=True)
    to_recipients = Column(Text, nullable=True)
    cc_recipients = Column(Text, nullable=True)
    in_reply_to_header = Column(String(500), nullable=True)
    body_text = Column(Text, nullable=True)
    full_payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
