"""
Tests for the nudge sweep: per-participant reminder progression, escalation
to the organizer, and no advancement on failed sends.
"""

from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock

from src.scheduling.gateway import EmailGateway
from src.scheduling.models import MessageRole, ParticipantState, ParticipantStatus, SessionStatus
from src.scheduling.nudger import NudgeScheduler, NudgeThresholds
from tests.fakes import (
    ASSISTANT,
    ORGANIZER,
    PARTICIPANT_1,
    PARTICIPANT_2,
    FakeSender,
    seed_session,
)

NOW = datetime(2026, 10, 22, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def thresholds():
    return NudgeThresholds.from_minutes(24 * 60, 48 * 60, 72 * 60)


@pytest.fixture
def nudger(repository, gateway, thresholds):
    return NudgeScheduler(repository, gateway, thresholds)


async def _pending_session(repository, *participants):
    return await seed_session(
        repository, participants, status=SessionStatus.PENDING_PARTICIPANT_RESPONSE
    )


class TestNudgeSweep:

    @pytest.mark.asyncio
    async def test_first_reminder_after_threshold(self, nudger, repository, sender):
        session = await _pending_session(
            repository,
            ParticipantState(email=PARTICIPANT_1, last_request_sent_at=NOW - timedelta(hours=25)),
            ParticipantState(email=PARTICIPANT_2, status=ParticipantStatus.RECEIVED,
                             last_request_sent_at=NOW - timedelta(hours=30)),
        )

        summary = await nudger.run_sweep(now=NOW)

        assert summary.sessions_checked == 1
        assert summary.reminders_sent == 1
        assert len(sender.sent) == 1
        reminder = sender.sent[0]
        assert reminder["to"] == PARTICIPANT_1
        assert reminder["subject"] == "Reminder: Availability for Project kickoff"
        assert reminder["headers"]["In-Reply-To"].startswith("<seed-")

        stored = await repository.get_session(session.session_id)
        p1 = stored.participant(PARTICIPANT_1)
        assert p1.status == ParticipantStatus.NUDGED_1
        assert p1.last_request_sent_at == NOW
        assert stored.participant(PARTICIPANT_2).status == ParticipantStatus.RECEIVED

        messages = await repository.list_messages(session.session_id)
        assert messages[-1].role == MessageRole.AI_AGENT
        assert messages[-1].provider_message_id == reminder["message_id"]

    @pytest.mark.asyncio
    async def test_not_due_yet(self, nudger, repository, sender):
        await _pending_session(
            repository,
            ParticipantState(email=PARTICIPANT_1, last_request_sent_at=NOW - timedelta(hours=23)),
        )
        summary = await nudger.run_sweep(now=NOW)
        assert summary.reminders_sent == 0
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_never_asked_participant_is_skipped(self, nudger, repository, sender):
        await _pending_session(repository, ParticipantState(email=PARTICIPANT_1))
        await nudger.run_sweep(now=NOW)
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_second_reminder(self, nudger, repository, sender):
        session = await _pending_session(
            repository,
            ParticipantState(email=PARTICIPANT_1, status=ParticipantStatus.NUDGED_1,
                             last_request_sent_at=NOW - timedelta(hours=49)),
        )
        await nudger.run_sweep(now=NOW)

        assert sender.sent[0]["subject"] == "Second Reminder: Availability for Project kickoff"
        stored = await repository.get_session(session.session_id)
        assert stored.participant(PARTICIPANT_1).status == ParticipantStatus.NUDGED_2

    @pytest.mark.asyncio
    async def test_escalation_notifies_organizer(self, nudger, repository, sender):
        session = await _pending_session(
            repository,
            ParticipantState(email=PARTICIPANT_1, status=ParticipantStatus.NUDGED_2,
                             last_request_sent_at=NOW - timedelta(hours=73)),
        )

        summary = await nudger.run_sweep(now=NOW)

        assert summary.escalations == 1
        assert sender.sent[0]["to"] == ORGANIZER
        assert sender.sent[0]["subject"] == "Action Required: Issue scheduling Project kickoff"
        assert PARTICIPANT_1 in sender.sent[0]["text_body"]
        stored = await repository.get_session(session.session_id)
        assert stored.status == SessionStatus.ESCALATED_TO_ORGANIZER
        assert stored.participant(PARTICIPANT_1).status == ParticipantStatus.ESCALATED

    @pytest.mark.asyncio
    async def test_reply_during_sweep_blocks_escalation(self, nudger, repository, sender):
        session = await _pending_session(
            repository,
            ParticipantState(email=PARTICIPANT_1, status=ParticipantStatus.NUDGED_2,
                             last_request_sent_at=NOW - timedelta(hours=73)),
        )
        snapshot = await repository.list_sessions_by_status(
            SessionStatus.PENDING_PARTICIPANT_RESPONSE
        )
        await repository.update_participant(
            session.session_id, PARTICIPANT_1, status=ParticipantStatus.RECEIVED
        )
        repository.list_sessions_by_status = AsyncMock(return_value=snapshot)

        summary = await nudger.run_sweep(now=NOW)

        assert summary.escalations == 0
        assert len(sender.sent) == 1
        stored = await repository.get_session(session.session_id)
        assert stored.status == SessionStatus.PENDING_PARTICIPANT_RESPONSE
        assert stored.participant(PARTICIPANT_1).status == ParticipantStatus.RECEIVED

    @pytest.mark.asyncio
    async def test_failed_send_does_not_advance(self, repository, thresholds):
        failing = FakeSender(fail_for=[PARTICIPANT_1])
        nudger = NudgeScheduler(repository, EmailGateway(failing, ASSISTANT), thresholds)
        asked_at = NOW - timedelta(hours=25)
        session = await _pending_session(
            repository, ParticipantState(email=PARTICIPANT_1, last_request_sent_at=asked_at)
        )

        summary = await nudger.run_sweep(now=NOW)

        assert summary.failures == 1
        stored = await repository.get_session(session.session_id)
        assert stored.participant(PARTICIPANT_1).status == ParticipantStatus.PENDING
        assert stored.participant(PARTICIPANT_1).last_request_sent_at == asked_at

    @pytest.mark.asyncio
    async def test_participants_advance_independently(self, nudger, repository, sender):
        session = await _pending_session(
            repository,
            ParticipantState(email=PARTICIPANT_1, last_request_sent_at=NOW - timedelta(hours=25)),
            ParticipantState(email=PARTICIPANT_2, status=ParticipantStatus.NUDGED_1,
                             last_request_sent_at=NOW - timedelta(hours=10)),
        )
        await nudger.run_sweep(now=NOW)

        stored = await repository.get_session(session.session_id)
        assert stored.participant(PARTICIPANT_1).status == ParticipantStatus.NUDGED_1
        assert stored.participant(PARTICIPANT_2).status == ParticipantStatus.NUDGED_1
        assert [m["to"] for m in sender.sent] == [PARTICIPANT_1]

    @pytest.mark.asyncio
    async def test_repeat_sweep_is_idempotent(self, nudger, repository, sender):
        await _pending_session(
            repository,
            ParticipantState(email=PARTICIPANT_1, last_request_sent_at=NOW - timedelta(hours=25)),
        )
        await nudger.run_sweep(now=NOW)
        second = await nudger.run_sweep(now=NOW + timedelta(minutes=5))

        assert second.reminders_sent == 0
        assert len(sender.sent) == 1

    @pytest.mark.asyncio
    async def test_only_pending_sessions_swept(self, nudger, repository, sender):
        await seed_session(
            repository,
            [ParticipantState(email=PARTICIPANT_1, last_request_sent_at=NOW - timedelta(days=5))],
            status=SessionStatus.CONFIRMED,
        )
        summary = await nudger.run_sweep(now=NOW)
        assert summary.sessions_checked == 0
        assert sender.sent == []

    def test_default_thresholds_from_config(self):
        thresholds = NudgeThresholds.default()
        assert thresholds.first == timedelta(hours=24)
        assert thresholds.escalate == timedelta(hours=72)
