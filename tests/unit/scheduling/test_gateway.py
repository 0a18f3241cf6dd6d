"""
Tests for the email gateway: inbound normalization and threaded outbound
sends with the recipient grouping policy.
"""

import pytest

from src.scheduling.exceptions import IgnorableInputError
from src.scheduling.gateway import EmailGateway, html_to_text, reply_subject
from src.scheduling.models import ThreadingContext
from tests.fakes import (
    ASSISTANT,
    ORGANIZER,
    PARTICIPANT_1,
    PARTICIPANT_2,
    FakeSender,
    inbound_payload,
    routed,
)

SESSION_ID = "3f2b8c1e-5d4a-4e6f-9a7b-1c2d3e4f5a6b"


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def gateway(sender):
    return EmailGateway(sender, ASSISTANT)


class TestReceiveInbound:

    def test_normalizes_postmark_payload(self, gateway):
        payload = inbound_payload(
            ORGANIZER,
            [ASSISTANT, PARTICIPANT_1],
            cc=[PARTICIPANT_2],
            message_id="abc-1",
            in_reply_to="prev@mtasv.net",
            references=["root@mail.example.com", "prev@mtasv.net"],
            sender_name="Olivia Organizer",
        )
        message = gateway.receive_inbound(payload)

        assert message.sender.email == ORGANIZER
        assert message.sender.name == "Olivia Organizer"
        assert [a.email for a in message.to] == [ASSISTANT, PARTICIPANT_1]
        assert [a.email for a in message.cc] == [PARTICIPANT_2]
        assert message.provider_message_id == "abc-1"
        assert message.message_id_header == "abc-1@mail.example.com"
        assert message.in_reply_to == "prev@mtasv.net"
        assert message.references == ["root@mail.example.com", "prev@mtasv.net"]
        assert message.routing_token is None

    def test_routing_token_from_mailbox_hash(self, gateway):
        payload = inbound_payload(PARTICIPANT_1, [ASSISTANT], mailbox_hash=SESSION_ID)
        assert gateway.receive_inbound(payload).routing_token == SESSION_ID

    def test_routing_token_from_plus_address(self, gateway):
        payload = inbound_payload(PARTICIPANT_1, [routed(SESSION_ID)])
        assert gateway.receive_inbound(payload).routing_token == SESSION_ID

    def test_html_body_used_when_text_missing(self, gateway):
        payload = inbound_payload(
            PARTICIPANT_1, [ASSISTANT], body="",
            html_body="<html><body><p>Tuesday works</p><script>x()</script></body></html>",
        )
        assert gateway.receive_inbound(payload).body_text == "Tuesday works"

    @pytest.mark.parametrize("raw", [None, "text", ["list"]])
    def test_non_object_payload_is_ignorable(self, gateway, raw):
        with pytest.raises(IgnorableInputError) as excinfo:
            gateway.receive_inbound(raw)
        assert excinfo.value.reason == "ignored_invalid_payload"

    def test_missing_sender_is_ignorable(self, gateway):
        payload = inbound_payload(ORGANIZER, [ASSISTANT])
        payload["From"] = ""
        payload["FromFull"] = None
        with pytest.raises(IgnorableInputError) as excinfo:
            gateway.receive_inbound(payload)
        assert excinfo.value.reason == "ignored_missing_sender"

    def test_missing_message_id_is_ignorable(self, gateway):
        payload = inbound_payload(ORGANIZER, [ASSISTANT])
        payload["MessageID"] = ""
        payload["Headers"] = []
        with pytest.raises(IgnorableInputError):
            gateway.receive_inbound(payload)

    def test_schema_violation_is_ignorable(self, gateway):
        payload = inbound_payload(ORGANIZER, [ASSISTANT])
        payload["ToFull"] = "not-a-list"
        with pytest.raises(IgnorableInputError):
            gateway.receive_inbound(payload)

    def test_malformed_header_entries_are_skipped(self, gateway):
        payload = inbound_payload(ORGANIZER, [ASSISTANT], message_id="abc-2", in_reply_to="prev@x.com")
        payload["Headers"] += [
            {"Name": "X-Odd", "Value": None},
            {"Name": None, "Value": "orphan"},
            {"Value": "no-name"},
            "not-a-header",
        ]

        message = gateway.receive_inbound(payload)

        assert message.provider_message_id == "abc-2"
        assert message.message_id_header == "abc-2@mail.example.com"
        assert message.in_reply_to == "prev@x.com"

    def test_null_lists_fall_back_to_provider_ids(self, gateway):
        payload = inbound_payload(ORGANIZER, [ASSISTANT], message_id="abc-3", cc=[PARTICIPANT_1])
        payload["ToFull"] = None
        payload["CcFull"] = None
        payload["Headers"] = None

        message = gateway.receive_inbound(payload)

        assert message.provider_message_id == "abc-3"
        assert message.message_id_header == "abc-3"
        assert [a.email for a in message.to] == [ASSISTANT]
        assert [a.email for a in message.cc] == [PARTICIPANT_1]


class TestSendThreaded:

    @pytest.mark.asyncio
    async def test_single_recipient_threaded(self, gateway, sender):
        threading = ThreadingContext(in_reply_to="trigger@mail.example.com", references=["root@x.com"])
        result = await gateway.send_threaded(
            "Re: Project kickoff", "Body", [ORGANIZER], threading, SESSION_ID
        )

        assert result.status == "sent"
        assert result.delivered == [ORGANIZER]
        sent = sender.sent[0]
        assert sent["reply_to"] == routed(SESSION_ID)
        assert sent["headers"]["In-Reply-To"] == "<trigger@mail.example.com>"
        assert sent["headers"]["References"] == "<root@x.com> <trigger@mail.example.com>"
        assert sent["headers"]["X-PM-Tag"] == "individual-recipient"
        assert sent["text_body"] == "Body"

    @pytest.mark.asyncio
    async def test_multiple_recipients_sent_individually(self, gateway, sender):
        result = await gateway.send_threaded(
            "Re: Kickoff", "When are you free?", [PARTICIPANT_1, PARTICIPANT_2],
            ThreadingContext(), SESSION_ID
        )

        assert result.status == "sent"
        assert len(sender.sent) == 2
        assert {m["to"] for m in sender.sent} == {PARTICIPANT_1, PARTICIPANT_2}
        for message in sender.sent:
            assert message["headers"]["X-PM-Tag"] == "individual-recipient"
            assert message["text_body"].endswith("Please reply directly to me only.")
        assert set(result.message_ids) == {PARTICIPANT_1, PARTICIPANT_2}

    @pytest.mark.asyncio
    async def test_group_send_is_one_message(self, gateway, sender):
        result = await gateway.send_threaded(
            "Re: Kickoff", "Confirmed", [ORGANIZER, PARTICIPANT_1, PARTICIPANT_2],
            ThreadingContext(), SESSION_ID, send_as_group=True
        )

        assert len(sender.sent) == 1
        assert sender.sent[0]["to"] == f"{ORGANIZER}, {PARTICIPANT_1}, {PARTICIPANT_2}"
        assert "X-PM-Tag" not in sender.sent[0]["headers"]
        assert result.message_ids == {
            ORGANIZER: "pm-0001", PARTICIPANT_1: "pm-0001", PARTICIPANT_2: "pm-0001"
        }

    @pytest.mark.asyncio
    async def test_assistant_never_a_recipient(self, gateway, sender):
        result = await gateway.send_threaded(
            "Re: Kickoff", "Body", [ASSISTANT, routed(SESSION_ID)],
            ThreadingContext(), SESSION_ID
        )

        assert result.status == "no_recipients"
        assert not result.success
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_partial_failure_reported(self):
        failing = FakeSender(fail_for=[PARTICIPANT_2], raise_for=[ORGANIZER])
        gateway = EmailGateway(failing, ASSISTANT)
        result = await gateway.send_threaded(
            "Re: Kickoff", "Body", [PARTICIPANT_1, PARTICIPANT_2, ORGANIZER],
            ThreadingContext(), SESSION_ID
        )

        assert result.status == "partial"
        assert result.delivered == [PARTICIPANT_1]
        assert result.failed == [PARTICIPANT_2, ORGANIZER]
        assert result.message_id == "pm-0001"

    @pytest.mark.asyncio
    async def test_total_failure(self):
        gateway = EmailGateway(FakeSender(fail_for=[ORGANIZER]), ASSISTANT)
        result = await gateway.send_threaded(
            "Re: Kickoff", "Body", [ORGANIZER], ThreadingContext(), SESSION_ID
        )
        assert result.status == "failed"
        assert not result.success


def test_reply_subject():
    assert reply_subject("Kickoff") == "Re: Kickoff"
    assert reply_subject("RE: Kickoff") == "RE: Kickoff"
    assert reply_subject("") == "Re: Meeting scheduling"


def test_html_to_text_empty():
    assert html_to_text(None) == ""
