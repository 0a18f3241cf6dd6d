"""
Tests for routing-address and threading-header helpers.
"""

import pytest

from src.scheduling.addressing import (
    build_references,
    build_reply_to_address,
    clean_message_id,
    extract_routing_token,
    is_assistant_address,
    is_valid_session_token,
    mask_email,
    normalize_email,
    parse_references,
    thread_key,
)

ASSISTANT = "scheduler@example.com"
TOKEN = "3f2b8c1e-5d4a-4e6f-9a7b-1c2d3e4f5a6b"


class TestAddresses:

    def test_normalize_strips_display_name_and_case(self):
        assert normalize_email("  Paul Smith <Paul@Example.COM> ") == "paul@example.com"
        assert normalize_email(None) == ""

    def test_reply_to_roundtrip(self):
        reply_to = build_reply_to_address(ASSISTANT, TOKEN)
        assert reply_to == f"scheduler+{TOKEN}@example.com"
        assert extract_routing_token(reply_to, ASSISTANT) == TOKEN

    def test_reply_to_rejects_invalid_assistant(self):
        with pytest.raises(ValueError):
            build_reply_to_address("not-an-address", TOKEN)

    @pytest.mark.parametrize("address", [
        "scheduler@example.com",
        "scheduler+@example.com",
        "scheduler+abc@other.com",
        "someone+abc@example.com",
        None,
    ])
    def test_no_token_for_foreign_or_bare_addresses(self, address):
        assert extract_routing_token(address, ASSISTANT) is None

    def test_assistant_address_matches_plus_form(self):
        assert is_assistant_address("Scheduler@example.com", ASSISTANT)
        assert is_assistant_address(f"scheduler+{TOKEN}@example.com", ASSISTANT)
        assert not is_assistant_address("scheduler@example.org", ASSISTANT)
        assert not is_assistant_address("paul@example.com", ASSISTANT)

    def test_session_token_must_be_uuid(self):
        assert is_valid_session_token(TOKEN)
        assert not is_valid_session_token("abc")
        assert not is_valid_session_token("")

    def test_mask_email_hides_local_part(self):
        assert mask_email("paul@example.com") == "pa***@example.com"
        assert mask_email("garbage") == "<unknown>"


class TestThreadingHeaders:

    def test_clean_and_thread_key(self):
        assert clean_message_id(" <abc-123@mtasv.net> ") == "abc-123@mtasv.net"
        assert thread_key("<abc-123@mtasv.net>") == "abc-123"
        assert clean_message_id("<>") is None

    def test_parse_references(self):
        header = "<a@x.com> <b@y.com>\r\n <c@z.com>"
        assert parse_references(header) == ["a@x.com", "b@y.com", "c@z.com"]
        assert parse_references("plain-id other-id") == ["plain-id", "other-id"]
        assert parse_references(None) == []

    def test_build_references_appends_trigger_once(self):
        refs = build_references(["a@x.com", "<b@y.com>", "a@x.com"], "<b@y.com>")
        assert refs == ["a@x.com", "b@y.com"]
        assert build_references([], "t@x.com") == ["t@x.com"]
