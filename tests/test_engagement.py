"""Tests for the engagement callback boundary."""

from unittest.mock import patch

import pytest

from models.errors import ConflictError, NotFoundError, ValidationError
from models.outreach import OutreachStatus
from orchestration.engagement import EngagementCallbackHandler

from conftest import OWNER


@pytest.fixture
def handler(machine):
    return EngagementCallbackHandler(machine)


@pytest.fixture
def sent(machine, with_draft):
    return machine.mark_sent(OWNER, with_draft.id)


class TestEngagementCallbackHandler:

    @pytest.mark.parametrize("raw", ["opened", "OPENED", "email_opened", " Open "])
    def test_open_aliases(self, handler, sent, raw):
        prospect = handler.handle({"prospect_id": sent.id, "event": raw})
        assert prospect.outreach_status is OutreachStatus.OPENED

    @pytest.mark.parametrize("raw", ["replied", "REPLIED", "email_replied", "reply"])
    def test_reply_aliases(self, handler, sent, raw):
        prospect = handler.handle({"prospect_id": sent.id, "event": raw})
        assert prospect.outreach_status is OutreachStatus.REPLIED

    def test_open_after_reply_is_accepted_and_ignored(self, handler, sent):
        replied = handler.handle({"prospect_id": sent.id, "event": "replied"})
        again = handler.handle({"prospect_id": sent.id, "event": "opened"})

        assert again.outreach_status is OutreachStatus.REPLIED
        assert again.version == replied.version

    def test_duplicate_callback_is_a_no_op(self, handler, sent):
        first = handler.handle({"prospect_id": sent.id, "event": "opened"})
        second = handler.handle({"prospect_id": sent.id, "event": "opened"})
        assert second.version == first.version

    @pytest.mark.parametrize("payload", [
        {"prospect_id": "p-1", "event": "clicked"},
        {"prospect_id": "p-1"},
        {"event": "opened"},
        {"prospect_id": "  ", "event": "opened"},
        "opened",
    ])
    def test_malformed_payloads(self, handler, payload):
        with pytest.raises(ValidationError):
            handler.handle(payload)

    def test_unknown_prospect(self, handler):
        with pytest.raises(NotFoundError):
            handler.handle({"prospect_id": "missing", "event": "opened"})

    def test_callback_before_send_is_a_conflict(self, handler, with_draft):
        with pytest.raises(ConflictError):
            handler.handle({"prospect_id": with_draft.id, "event": "opened"})

    def test_lost_race_is_retried(self, handler, machine, sent):
        real = machine.record_engagement
        calls = []

        def racing(prospect_id, event):
            calls.append(event)
            if len(calls) == 1:
                raise ConflictError("changed concurrently", current_status="SENT")
            return real(prospect_id, event)

        with patch.object(machine, "record_engagement", side_effect=racing):
            prospect = handler.handle({"prospect_id": sent.id, "event": "opened"})

        assert len(calls) == 2
        assert prospect.outreach_status is OutreachStatus.OPENED
