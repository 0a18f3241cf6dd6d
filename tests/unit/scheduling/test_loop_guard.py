"""
Tests for loop containment of the assistant's own mail.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy import select

from src.scheduling.gateway import EmailGateway
from src.scheduling.loop_guard import LoopGuard
from src.storage.models import DiscardedAgentEmail
from tests.fakes import ASSISTANT, ORGANIZER, PARTICIPANT_1, FakeSender, inbound_payload, routed

SESSION_ID = "3f2b8c1e-5d4a-4e6f-9a7b-1c2d3e4f5a6b"


def _message(sender, to, **kwargs):
    return EmailGateway(FakeSender(), ASSISTANT).receive_inbound(inbound_payload(sender, to, **kwargs))


class TestLoopGuard:

    def test_human_sender_passes(self):
        guard = LoopGuard(ASSISTANT, MagicMock())
        assert not guard.check(_message(PARTICIPANT_1, [ASSISTANT])).blocked

    def test_assistant_without_token_blocked(self):
        guard = LoopGuard(ASSISTANT, MagicMock())
        check = guard.check(_message(ASSISTANT, [ORGANIZER]))
        assert check.blocked
        assert check.reason == "sender_is_assistant_without_routing_token"

    def test_assistant_with_malformed_token_blocked(self):
        guard = LoopGuard(ASSISTANT, MagicMock())
        assert guard.check(_message(ASSISTANT, [ORGANIZER], mailbox_hash="not-a-uuid")).blocked

    def test_assistant_with_session_token_passes(self):
        guard = LoopGuard(ASSISTANT, MagicMock())
        assert not guard.check(_message(ASSISTANT, [routed(SESSION_ID)])).blocked

    def test_plus_addressed_assistant_sender_is_assistant(self):
        guard = LoopGuard(ASSISTANT, MagicMock())
        assert guard.check(_message(routed("x"), [ORGANIZER])).blocked

    @pytest.mark.asyncio
    async def test_quarantine_persists_record(self, repository, session_factory):
        guard = LoopGuard(ASSISTANT, repository)
        message = _message(ASSISTANT, [ORGANIZER], message_id="loop-1", body="echo")

        await guard.quarantine(message)

        with session_factory() as db:
            rows = db.execute(select(DiscardedAgentEmail)).scalars().all()
        assert len(rows) == 1
        assert rows[0].provider_message_id == "loop-1"
        assert rows[0].from_email == ASSISTANT
        assert rows[0].body_text == "echo"
        assert rows[0].full_payload["MessageID"] == "loop-1"

    @pytest.mark.asyncio
    async def test_quarantine_storage_failure_is_logged(self):
        repository = MagicMock()
        repository.quarantine_message = AsyncMock(side_effect=RuntimeError("db down"))
        guard = LoopGuard(ASSISTANT, repository)

        await guard.quarantine(_message(ASSISTANT, [ORGANIZER]))

        repository.quarantine_message.assert_awaited_once()
