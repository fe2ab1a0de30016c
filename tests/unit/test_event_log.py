"""
Unit Tests for the hash-chained EventLog
"""

import json

import pytest
from dataclasses import replace
from decimal import Decimal

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from parametric_policy.events import (
    GENESIS_HASH,
    EventLog,
    PolicyEventType,
    PolicyJSONEncoder,
)


@pytest.fixture
def log() -> EventLog:
    event_log = EventLog("0xpolicy")
    event_log.append(PolicyEventType.POLICY_FUNDED, 0, {"amount": Decimal("100")})
    event_log.append(PolicyEventType.POLICY_REVIVED, 10, {"amount": Decimal("120")})
    event_log.append(PolicyEventType.TERMINATE_POLICY, 20, {"reason": "admin"})
    return event_log


class TestAppend:

    def test_sequence_and_links(self, log: EventLog) -> None:
        events = log.events()

        assert [e.sequence for e in events] == [0, 1, 2]
        assert events[0].previous_hash == GENESIS_HASH
        assert events[1].previous_hash == events[0].row_hash
        assert events[2].previous_hash == events[1].row_hash
        assert all(len(e.row_hash) == 64 for e in events)

    def test_events_carry_policy_address(self, log: EventLog) -> None:
        assert {e.policy_address for e in log} == {"0xpolicy"}

    def test_filter_by_type(self, log: EventLog) -> None:
        funded = log.events(PolicyEventType.POLICY_FUNDED)

        assert len(funded) == 1
        assert funded[0].payload["amount"] == Decimal("100")

    def test_last(self, log: EventLog) -> None:
        assert log.last().event_type == PolicyEventType.TERMINATE_POLICY
        assert EventLog("0xempty").last() is None

    def test_to_dict_is_json_ready(self, log: EventLog) -> None:
        data = log.events()[0].to_dict()

        assert data["event_type"] == "PolicyFunded"
        assert data["payload"] == {"amount": "100"}
        json.dumps(data)

    def test_encoder_handles_decimal_and_enum(self) -> None:
        encoded = json.dumps(
            {"amount": Decimal("1.50"), "type": PolicyEventType.POLICY_CLAIMED},
            cls=PolicyJSONEncoder,
        )

        assert encoded == '{"amount": "1.50", "type": "PolicyClaimed"}'


class TestVerifyChain:

    def test_intact_chain(self, log: EventLog) -> None:
        assert log.verify_chain() is True

    def test_empty_chain(self) -> None:
        assert EventLog("0xpolicy").verify_chain() is True

    def test_rewritten_payload_detected(self, log: EventLog) -> None:
        log._events[1] = replace(log._events[1], payload={"amount": Decimal("1")})

        assert log.verify_chain() is False

    def test_removed_event_detected(self, log: EventLog) -> None:
        del log._events[1]

        assert log.verify_chain() is False


class TestSubscribers:

    def test_subscriber_notified(self) -> None:
        received = []
        log = EventLog("0xpolicy")
        log.subscribe(received.append)

        event = log.append(PolicyEventType.POLICY_MATURED, 5)

        assert received == [event]

    def test_failing_subscriber_does_not_block_append(self) -> None:
        def broken(event):
            raise RuntimeError("subscriber down")

        received = []
        log = EventLog("0xpolicy")
        log.subscribe(broken)
        log.subscribe(received.append)

        log.append(PolicyEventType.POLICY_CLAIMED, 5, {"claimed": True})

        assert len(log) == 1
        assert len(received) == 1

    def test_unsubscribe(self) -> None:
        received = []
        log = EventLog("0xpolicy")
        log.subscribe(received.append)
        log.unsubscribe(received.append)

        log.append(PolicyEventType.POLICY_FUNDED, 0)

        assert received == []
