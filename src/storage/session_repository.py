"""
Session Repository

SQLAlchemy implementation of the scheduling store. Returns plain domain
records rather than ORM objects so callers never hold a live session.

Design Considerations:
- Short synchronous transactions behind async methods
- Participant entries updated one at a time under a row lock
- Session updates restricted to an explicit column allow-list
- Duplicate provider message ids surfaced as DuplicateMessageError or None
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Any

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from src.scheduling.addressing import clean_message_id, normalize_email, thread_key
from src.scheduling.base import SessionRepository
from src.scheduling.exceptions import DuplicateMessageError
from src.scheduling.models import (
    MessageRecord,
    MessageRole,
    ParticipantState,
    ParticipantStatus,
    SessionRecord,
    SessionStatus,
)
from src.storage.database import session_scope
from src.storage.models import DiscardedAgentEmail, SchedulingSession, SessionMessage
from src.utils.date_utils import ensure_utc, format_iso_date, parse_iso_datetime, utc_now

logger = logging.getLogger(__name__)

UPDATABLE_SESSION_FIELDS = frozenset({
    "organizer_name",
    "meeting_topic",
    "meeting_duration",
    "meeting_location",
    "is_virtual",
    "timezones",
    "enrichment_confidence",
    "status",
    "confirmed_datetime",
})


def _participant_from_dict(data: Dict[str, Any]) -> ParticipantState:
    return ParticipantState(
        email=data["email"],
        name=data.get("name"),
        status=ParticipantStatus(data.get("status", ParticipantStatus.PENDING.value)),
        last_request_sent_at=parse_iso_datetime(data.get("last_request_sent_at")),
    )


def _session_to_record(row: SchedulingSession) -> SessionRecord:
    return SessionRecord(
        session_id=row.session_id,
        organizer_email=row.organizer_email,
        organizer_name=row.organizer_name,
        status=SessionStatus(row.status),
        participants=[_participant_from_dict(p) for p in (row.participant_status or [])],
        meeting_topic=row.meeting_topic,
        meeting_duration=row.meeting_duration,
        meeting_location=row.meeting_location,
        is_virtual=row.is_virtual,
        timezones=dict(row.timezones or {}),
        enrichment_confidence=dict(row.enrichment_confidence or {}),
        confirmed_datetime=ensure_utc(row.confirmed_datetime),
        webhook_target_address=row.webhook_target_address,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def _message_to_record(row: SessionMessage) -> MessageRecord:
    return MessageRecord(
        id=row.id,
        session_id=row.session_id,
        provider_message_id=row.provider_message_id,
        message_id_header=row.message_id_header,
        role=MessageRole(row.role),
        sender_email=row.sender_email,
        recipients=row.recipients or "",
        subject=row.subject,
        body_text=row.body_text,
        in_reply_to=row.in_reply_to,
        references=row.references,
        created_at=ensure_utc(row.created_at),
    )


def _message_row(session_id: str, message: Dict[str, Any]) -> SessionMessage:
    role = message["role"]
    return SessionMessage(
        session_id=session_id,
        provider_message_id=message["provider_message_id"],
        message_id_header=clean_message_id(message.get("message_id_header")),
        role=role.value if isinstance(role, Enum) else role,
        sender_email=normalize_email(message["sender_email"]),
        recipients=message.get("recipients", ""),
        subject=message.get("subject"),
        body_text=message.get("body_text"),
        body_html=message.get("body_html"),
        in_reply_to=clean_message_id(message.get("in_reply_to")),
        references=message.get("references"),
        created_at=message.get("created_at") or utc_now(),
    )


class SqlSessionRepository(SessionRepository):
    """
    Relational store for sessions, messages and quarantined loop mail.

    All writes happen inside session_scope so a failure rolls back the whole
    unit of work. participant_status is only ever rewritten from a row read
    inside the same locked transaction.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        with session_scope(self.session_factory) as db:
            row = db.get(SchedulingSession, session_id)
            return _session_to_record(row) if row else None

    async def create_session(
        self, initial: Dict[str, Any], first_message: Dict[str, Any]
    ) -> SessionRecord:
        """
        Create a session together with its first message.

        Args:
            initial: Column values; participants given as ParticipantState list
            first_message: Message fields for the triggering email

        Returns:
            The created session

        Raises:
            DuplicateMessageError: The first message was already stored;
                nothing is created
        """
        participants = initial.get("participants", [])
        status = initial.get("status", SessionStatus.NEW)
        try:
            with session_scope(self.session_factory) as db:
                row = SchedulingSession(
                    organizer_email=normalize_email(initial["organizer_email"]),
                    organizer_name=initial.get("organizer_name"),
                    participant_status=[p.to_dict() for p in participants],
                    meeting_topic=initial.get("meeting_topic"),
                    meeting_duration=initial.get("meeting_duration"),
                    meeting_location=initial.get("meeting_location"),
                    is_virtual=initial.get("is_virtual"),
                    timezones=dict(initial.get("timezones") or {}),
                    enrichment_confidence=dict(initial.get("enrichment_confidence") or {}),
                    status=status.value if isinstance(status, Enum) else status,
                    webhook_target_address=initial.get("webhook_target_address"),
                )
                if initial.get("session_id"):
                    row.session_id = initial["session_id"]
                db.add(row)
                db.flush()
                db.add(_message_row(row.session_id, first_message))
                db.flush()
                record = _session_to_record(row)
        except IntegrityError as e:
            raise DuplicateMessageError(
                f"Message {first_message.get('provider_message_id')} already stored"
            ) from e

        logger.info(
            f"Created session {record.session_id} with {len(record.participants)} participants"
        )
        return record

    async def update_session(self, session_id: str, fields: Dict[str, Any]) -> bool:
        """
        Update only the named session columns.

        Raises:
            ValueError: For columns outside the allow-list, including
                participant_status
        """
        unknown = set(fields) - UPDATABLE_SESSION_FIELDS
        if unknown:
            raise ValueError(f"Cannot update session fields: {sorted(unknown)}")
        if not fields:
            return True

        with session_scope(self.session_factory) as db:
            row = db.get(SchedulingSession, session_id)
            if row is None:
                logger.warning(f"update_session: session {session_id} not found")
                return False
            for name, value in fields.items():
                if isinstance(value, Enum):
                    value = value.value
                if isinstance(value, dict):
                    value = dict(value)
                setattr(row, name, value)
            row.updated_at = utc_now()
        return True

    async def update_participant(
        self,
        session_id: str,
        email: str,
        status: Optional[ParticipantStatus] = None,
        last_request_sent_at: Optional[datetime] = None,
        expected_status: Optional[ParticipantStatus] = None,
    ) -> Optional[ParticipantState]:
        key = normalize_email(email)
        with session_scope(self.session_factory) as db:
            row = db.execute(
                select(SchedulingSession)
                .where(SchedulingSession.session_id == session_id)
                .with_for_update()
            ).scalar_one_or_none()
            if row is None:
                return None

            entries = [dict(p) for p in (row.participant_status or [])]
            for entry in entries:
                if normalize_email(entry.get("email")) != key:
                    continue
                if expected_status is not None and entry.get("status") != expected_status.value:
                    logger.info(
                        f"Participant update skipped in {session_id}: status is "
                        f"{entry.get('status')}, expected {expected_status.value}"
                    )
                    return None
                if status is not None:
                    entry["status"] = status.value
                if last_request_sent_at is not None:
                    entry["last_request_sent_at"] = format_iso_date(last_request_sent_at)
                # Reassign so the JSON column is flagged dirty.
                row.participant_status = entries
                row.updated_at = utc_now()
                return _participant_from_dict(entry)
        return None

    async def add_message(
        self, session_id: str, message: Dict[str, Any]
    ) -> Optional[MessageRecord]:
        try:
            with session_scope(self.session_factory) as db:
                row = _message_row(session_id, message)
                db.add(row)
                db.flush()
                return _message_to_record(row)
        except IntegrityError:
            logger.info(f"Message {message.get('provider_message_id')} already stored")
            return None

    async def list_messages(self, session_id: str) -> List[MessageRecord]:
        with session_scope(self.session_factory) as db:
            rows = db.execute(
                select(SessionMessage)
                .where(SessionMessage.session_id == session_id)
                .order_by(SessionMessage.created_at, SessionMessage.id)
            ).scalars().all()
            return [_message_to_record(r) for r in rows]

    async def find_session_id_by_message_reference(self, reference: str) -> Optional[str]:
        """
        Find the session owning a referenced message.

        Matches the cleaned reference and its @-less thread key against both
        provider ids and RFC Message-ID headers.
        """
        cleaned = clean_message_id(reference)
        if not cleaned:
            return None
        candidates = {cleaned}
        key = thread_key(cleaned)
        if key:
            candidates.add(key)

        with session_scope(self.session_factory) as db:
            row = db.execute(
                select(SessionMessage.session_id)
                .where(or_(
                    SessionMessage.provider_message_id.in_(candidates),
                    SessionMessage.message_id_header.in_(candidates),
                ))
                .order_by(SessionMessage.created_at.desc(), SessionMessage.id.desc())
                .limit(1)
            ).first()
            return row[0] if row else None

    async def message_exists(self, provider_message_id: str) -> bool:
        with session_scope(self.session_factory) as db:
            row = db.execute(
                select(SessionMessage.id)
                .where(SessionMessage.provider_message_id == provider_message_id)
                .limit(1)
            ).first()
            return row is not None

    async def list_sessions_by_status(self, status: SessionStatus) -> List[SessionRecord]:
        with session_scope(self.session_factory) as db:
            rows = db.execute(
                select(SchedulingSession)
                .where(SchedulingSession.status == status.value)
                .order_by(SchedulingSession.created_at)
            ).scalars().all()
            return [_session_to_record(r) for r in rows]

    async def quarantine_message(self, record: Dict[str, Any]) -> bool:
        try:
            with session_scope(self.session_factory) as db:
                db.add(DiscardedAgentEmail(**record))
                db.flush()
        except IntegrityError:
            logger.info(f"Agent email {record.get('provider_message_id')} already quarantined")
            return False
        logger.info(f"Quarantined agent email {record.get('provider_message_id')}")
        return True
