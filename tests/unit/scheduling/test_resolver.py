"""
Tests for session resolution: routing token, In-Reply-To, then a new session.
"""

import uuid

import pytest
from unittest.mock import AsyncMock, MagicMock

from src.scheduling.exceptions import SessionUnavailableError
from src.scheduling.gateway import EmailGateway
from src.scheduling.models import MessageRole, ParticipantState, ParticipantStatus, SessionStatus
from src.scheduling.resolver import SessionResolver, extract_participants, inbound_message_fields
from tests.fakes import (
    ASSISTANT,
    ORGANIZER,
    PARTICIPANT_1,
    PARTICIPANT_2,
    FakeSender,
    inbound_payload,
    routed,
    seed_session,
)


def _message(sender, to, **kwargs):
    return EmailGateway(FakeSender(), ASSISTANT).receive_inbound(inbound_payload(sender, to, **kwargs))


@pytest.fixture
def resolver(repository):
    return SessionResolver(repository, ASSISTANT)


class TestExtractParticipants:

    def test_recipients_minus_sender_and_assistant(self):
        message = _message(
            ORGANIZER, [ASSISTANT, PARTICIPANT_1], cc=[PARTICIPANT_2, ORGANIZER, PARTICIPANT_1]
        )
        participants = extract_participants(message, ASSISTANT)
        assert [p.email for p in participants] == [PARTICIPANT_1, PARTICIPANT_2]

    def test_plus_addressed_assistant_excluded(self):
        message = _message(ORGANIZER, [routed(str(uuid.uuid4())), PARTICIPANT_1])
        assert [p.email for p in extract_participants(message, ASSISTANT)] == [PARTICIPANT_1]

    def test_body_block_fallback(self):
        body = (
            "Please set up a sync.\n\n"
            "Participants:\n"
            "- Paul <paul@example.com>\n"
            "- pria@example.com\n"
            "\nThanks"
        )
        message = _message(ORGANIZER, [ASSISTANT], body=body)
        assert [p.email for p in extract_participants(message, ASSISTANT)] == [
            PARTICIPANT_1, PARTICIPANT_2
        ]


class TestSessionResolver:

    @pytest.mark.asyncio
    async def test_new_session_created_with_first_message(self, resolver, repository):
        message = _message(
            ORGANIZER, [ASSISTANT, PARTICIPANT_1, PARTICIPANT_2],
            subject="Q3 planning", body="A 45 minutes zoom call please", message_id="first-1",
        )

        resolved = await resolver.resolve(message)

        assert resolved.is_new
        assert resolved.method == "new_session"
        session = resolved.session
        assert session.status == SessionStatus.NEW
        assert session.organizer_email == ORGANIZER
        assert session.meeting_topic == "Q3 planning"
        assert session.meeting_duration == "45 minutes"
        assert session.is_virtual is True
        assert [p.status for p in session.participants] == [ParticipantStatus.PENDING] * 2
        assert session.webhook_target_address == ASSISTANT

        messages = await repository.list_messages(session.session_id)
        assert [m.provider_message_id for m in messages] == ["first-1"]
        assert messages[0].role == MessageRole.HUMAN_ORGANIZER

    @pytest.mark.asyncio
    async def test_routing_token_wins(self, resolver, repository):
        session = await seed_session(repository, [ParticipantState(email=PARTICIPANT_1)])
        other = await seed_session(repository, [ParticipantState(email=PARTICIPANT_1)])
        other_messages = await repository.list_messages(other.session_id)

        message = _message(
            PARTICIPANT_1, [routed(session.session_id)],
            in_reply_to=other_messages[0].message_id_header,
        )
        resolved = await resolver.resolve(message)

        assert not resolved.is_new
        assert resolved.method == "routing_token"
        assert resolved.session.session_id == session.session_id

    @pytest.mark.asyncio
    async def test_in_reply_to_fallback_by_thread_key(self, resolver, repository):
        session = await seed_session(repository, [ParticipantState(email=PARTICIPANT_1)])
        await repository.add_message(session.session_id, {
            "provider_message_id": "pm-0001",
            "message_id_header": "pm-0001",
            "role": MessageRole.AI_AGENT,
            "sender_email": ASSISTANT,
            "recipients": PARTICIPANT_1,
            "subject": "Re: Project kickoff",
            "body_text": "When are you free?",
        })

        message = _message(PARTICIPANT_1, [ASSISTANT], in_reply_to="pm-0001@mtasv.net")
        resolved = await resolver.resolve(message)

        assert resolved.method == "in_reply_to"
        assert resolved.session.session_id == session.session_id

    @pytest.mark.asyncio
    async def test_unknown_token_falls_through_to_new_session(self, resolver):
        message = _message(ORGANIZER, [routed(str(uuid.uuid4())), PARTICIPANT_1])
        resolved = await resolver.resolve(message)
        assert resolved.is_new

    @pytest.mark.asyncio
    async def test_store_failure_raises_session_unavailable(self):
        repository = MagicMock()
        repository.create_session = AsyncMock(side_effect=RuntimeError("db down"))
        resolver = SessionResolver(repository, ASSISTANT)

        with pytest.raises(SessionUnavailableError):
            await resolver.resolve(_message(ORGANIZER, [ASSISTANT, PARTICIPANT_1]))


def test_inbound_message_fields():
    message = _message(
        PARTICIPANT_1, [ASSISTANT], cc=[PARTICIPANT_2], message_id="m-1",
        references=["a@x.com", "b@y.com"],
    )
    fields = inbound_message_fields(message, MessageRole.HUMAN_PARTICIPANT)
    assert fields["provider_message_id"] == "m-1"
    assert fields["recipients"] == f"{ASSISTANT}, {PARTICIPANT_2}"
    assert fields["references"] == "a@x.com b@y.com"
    assert fields["role"] == MessageRole.HUMAN_PARTICIPANT
