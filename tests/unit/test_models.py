"""
Unit Tests for Policy Data Models

Tests:
- PolicyState transitions table
- RevivalRule.enabled
- PolicyConfig conversion, validation and dict round trip
- PolicyRecord windows
"""

import pytest
from decimal import Decimal

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from parametric_policy.errors import PolicyConfigurationError
from parametric_policy.models import (
    PolicyConfig,
    PolicyHolder,
    PolicyRecord,
    PolicyState,
    RevivalRule,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    is_valid_transition,
)


DAY = 86400


def make_config(**overrides) -> PolicyConfig:
    values = dict(
        policy_holder=PolicyHolder(name="Holder", address="0xholder"),
        policy_manager_address="0xmanager",
        premium_to_be_paid="100",
        total_coverage_by_policy="1000",
        time_interval=30 * DAY,
        policy_tenure=360 * DAY,
        grace_period=7 * DAY,
        revival_rule=RevivalRule("120", 14 * DAY),
        admins=["0xadmin"],
        oracle_address="0xoracle",
        price_feed_address="0xfeed",
    )
    values.update(overrides)
    return PolicyConfig(**values)


class TestPolicyState:

    def test_all_states_in_transition_table(self) -> None:
        for state in PolicyState:
            assert state.value in VALID_TRANSITIONS

    def test_terminated_is_absorbing(self) -> None:
        assert VALID_TRANSITIONS["TERMINATED"] == []
        assert TERMINAL_STATES == ["TERMINATED"]
        for target in PolicyState:
            assert is_valid_transition(PolicyState.TERMINATED, target) is False

    def test_lapse_and_revival_transitions(self) -> None:
        assert is_valid_transition(PolicyState.ACTIVE, PolicyState.INACTIVE) is True
        assert is_valid_transition(PolicyState.INACTIVE, PolicyState.ACTIVE) is True
        assert is_valid_transition(PolicyState.INACTIVE, PolicyState.TERMINATED) is True


class TestRevivalRule:

    def test_zero_rule_disabled(self) -> None:
        assert RevivalRule(Decimal("0"), 0).enabled is False

    def test_rule_with_amount_enabled(self) -> None:
        assert RevivalRule(Decimal("5"), 0).enabled is True


class TestPolicyConfig:

    def test_amounts_converted_to_decimal(self) -> None:
        config = make_config()

        assert config.premium_to_be_paid == Decimal("100")
        assert isinstance(config.premium_to_be_paid, Decimal)
        assert isinstance(config.revival_rule.revival_amount, Decimal)

    def test_valid_config_passes(self) -> None:
        make_config().validate()

    @pytest.mark.parametrize("overrides,fragment", [
        ({"premium_to_be_paid": "0"}, "premium_to_be_paid"),
        ({"total_coverage_by_policy": "-1"}, "total_coverage_by_policy"),
        ({"time_interval": 0}, "time_interval"),
        ({"policy_tenure": DAY}, "policy_tenure"),
        ({"grace_period": -1}, "grace_period"),
        ({"time_before_commencement": -1}, "time_before_commencement"),
        ({"revival_rule": RevivalRule("1", -1)}, "revival_period"),
        ({"admins": ["0xadmin", " "]}, "admins"),
        ({"policy_manager_address": ""}, "policy_manager_address"),
    ])
    def test_invalid_values_rejected(self, overrides, fragment) -> None:
        with pytest.raises(PolicyConfigurationError) as exc_info:
            make_config(**overrides).validate()

        assert fragment in str(exc_info.value)
        assert exc_info.value.error_code == "POL-070"

    def test_dict_round_trip(self) -> None:
        config = make_config(policy_type="flight-delay", time_before_commencement=DAY)

        restored = PolicyConfig.from_dict(config.to_dict())

        assert restored == config

    def test_to_dict_serializes_decimals_as_strings(self) -> None:
        data = make_config().to_dict()

        assert data["premium_to_be_paid"] == "100.000000000000000000"
        assert data["revival_rule"]["revival_period"] == 14 * DAY

    def test_from_dict_missing_key(self) -> None:
        data = make_config().to_dict()
        del data["premium_to_be_paid"]

        with pytest.raises(PolicyConfigurationError):
            PolicyConfig.from_dict(data)

    def test_from_dict_malformed_amount(self) -> None:
        data = make_config().to_dict()
        data["total_coverage_by_policy"] = "lots"

        with pytest.raises(PolicyConfigurationError):
            PolicyConfig.from_dict(data)

    @pytest.mark.parametrize("overrides", [
        {"premium_to_be_paid": "abc"},
        {"total_coverage_by_policy": "lots"},
        {"revival_rule": RevivalRule("many", 14 * DAY)},
        {"revival_rule": RevivalRule("120", "two weeks")},
    ])
    def test_malformed_value_on_construction(self, overrides) -> None:
        with pytest.raises(PolicyConfigurationError) as exc_info:
            make_config(**overrides)

        assert exc_info.value.error_code == "POL-070"


class TestPolicyRecord:

    def test_initial_record(self) -> None:
        record = PolicyRecord.from_config(make_config(), created_at=500)

        assert record.state == PolicyState.ACTIVE
        assert record.last_payment_timestamp == 500
        assert record.elapsed_since_creation == 0
        assert record.balance == Decimal("0")

    def test_windows_anchored_at_due_time(self) -> None:
        record = PolicyRecord.from_config(make_config(), created_at=0)

        assert record.payment_due_at == 30 * DAY
        assert record.revival_deadline == 51 * DAY
        assert record.revival_window() == (30 * DAY, 51 * DAY)
        assert record.overdue_seconds(38 * DAY) == 8 * DAY

    def test_state_derived_from_flags(self) -> None:
        record = PolicyRecord.from_config(make_config(), created_at=0)

        record.is_policy_active = False
        assert record.state == PolicyState.INACTIVE

        record.is_terminated = True
        assert record.state == PolicyState.TERMINATED

    def test_to_dict_includes_state(self) -> None:
        data = PolicyRecord.from_config(make_config(), created_at=0).to_dict()

        assert data["state"] == "ACTIVE"
        assert data["balance"] == "0"
