"""
Unit Tests for PaymentVerifier

Tolerance is absolute: 10^14 base units at the 10^18 fixed-point base,
i.e. 0.0001 whole units, inclusive.
"""

import pytest
from decimal import Decimal

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from parametric_policy.decimal_gateway import BASE_UNIT_SCALE
from parametric_policy.payment_verifier import (
    DEFAULT_PAYMENT_TOLERANCE,
    PAYMENT_TOLERANCE_UNITS,
    PaymentVerifier,
    REASON_INVALID,
    REASON_OVERPAID,
    REASON_UNDERPAID,
    verify,
)


class TestConstants:

    def test_tolerance_units(self) -> None:
        assert PAYMENT_TOLERANCE_UNITS == 10 ** 14

    def test_default_tolerance_matches_units(self) -> None:
        assert DEFAULT_PAYMENT_TOLERANCE * BASE_UNIT_SCALE == PAYMENT_TOLERANCE_UNITS


class TestVerify:

    def test_exact_amount_accepted(self) -> None:
        result = verify(Decimal("1000"), Decimal("1000"))

        assert result.accepted is True
        assert result.deviation == Decimal("0")

    def test_small_underpayment_accepted(self) -> None:
        result = verify(Decimal("1000"), Decimal("999.99990001"))

        assert result.accepted is True
        assert result.deviation == Decimal("-0.00009999")

    def test_deviation_equal_to_tolerance_accepted(self) -> None:
        assert verify(Decimal("1000"), Decimal("999.9999")).accepted is True
        assert verify(Decimal("1000"), Decimal("1000.0001")).accepted is True

    def test_underpayment_beyond_tolerance(self) -> None:
        result = verify(Decimal("1000"), Decimal("999.9"))

        assert result.accepted is False
        assert result.reason == REASON_UNDERPAID
        assert result.deviation == Decimal("-0.1")

    def test_overpayment_beyond_tolerance(self) -> None:
        result = verify(Decimal("1000"), Decimal("1000.00010001"))

        assert result.accepted is False
        assert result.reason == REASON_OVERPAID

    @pytest.mark.parametrize("received", [Decimal("0"), Decimal("-5"), None, "abc", "NaN", "Infinity"])
    def test_invalid_received_rejected(self, received) -> None:
        result = verify(Decimal("1"), received)

        assert result.accepted is False
        assert result.reason == REASON_INVALID

    def test_string_and_int_inputs(self) -> None:
        assert verify("1000", 1000).accepted is True

    def test_custom_tolerance(self) -> None:
        verifier = PaymentVerifier(Decimal("0.5"))

        assert verifier.verify(Decimal("10"), Decimal("9.5")).accepted is True
        assert verifier.verify(Decimal("10"), Decimal("9.49")).accepted is False

    def test_zero_tolerance_requires_exact_amount(self) -> None:
        verifier = PaymentVerifier(Decimal("0"))

        assert verifier.verify(Decimal("10"), Decimal("10")).accepted is True
        assert verifier.verify(Decimal("10"), Decimal("10.000000000000000001")).accepted is False

    def test_negative_tolerance_rejected(self) -> None:
        with pytest.raises(ValueError):
            PaymentVerifier(Decimal("-0.1"))

    def test_result_carries_tolerance(self) -> None:
        result = PaymentVerifier(Decimal("0.01")).verify(Decimal("1"), Decimal("1"))

        assert result.tolerance == Decimal("0.01")
        assert result.expected == Decimal("1")


class TestVerifyScaled:

    def test_boundary_in_base_units(self) -> None:
        verifier = PaymentVerifier()
        expected = 1000 * BASE_UNIT_SCALE

        assert verifier.verify_scaled(expected, expected - PAYMENT_TOLERANCE_UNITS).accepted is True
        assert verifier.verify_scaled(expected, expected + PAYMENT_TOLERANCE_UNITS).accepted is True
        assert verifier.verify_scaled(expected, expected - PAYMENT_TOLERANCE_UNITS - 1).accepted is False
        assert verifier.verify_scaled(expected, expected + PAYMENT_TOLERANCE_UNITS + 1).accepted is False

    def test_non_integer_units_rejected(self) -> None:
        with pytest.raises(ValueError):
            PaymentVerifier().verify_scaled(1.5, 1)
