"""
============================================================================
Parametric Policy - Payment Verifier
============================================================================

Validates incoming funding and revival transfers against the amount the
policy expects, within an absolute tolerance.

TOLERANCE RULE:
    deviation = received - expected
    accepted  = abs(deviation) <= tolerance

    The default tolerance is 10^14 base units at the 10^18 fixed-point
    base, i.e. Decimal("0.0001") whole units. Payments carry rounding noise
    from upstream fee computations, so exact equality is not required.
    Both over- and under-payment beyond the tolerance are rejected.

EDGE CASES:
    - Non-positive received amount: rejected
    - Non-finite / unconvertible amount: rejected
    - Deviation exactly equal to tolerance: accepted

============================================================================
"""

from decimal import Decimal
from typing import Optional, Union
from dataclasses import dataclass
import logging

from parametric_policy.decimal_gateway import BASE_UNIT_SCALE, DecimalGateway

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# 10^14 base units == 1/10000 of a whole unit
PAYMENT_TOLERANCE_UNITS = BASE_UNIT_SCALE // 10_000
DEFAULT_PAYMENT_TOLERANCE = Decimal("0.0001")

REASON_ACCEPTED = "amount within tolerance"
REASON_UNDERPAID = "amount below expected beyond tolerance"
REASON_OVERPAID = "amount above expected beyond tolerance"
REASON_INVALID = "amount must be a positive finite number"


# =============================================================================
# Result
# =============================================================================

@dataclass(frozen=True)
class PaymentVerificationResult:
    """
    Result of verifying one payment.

    Attributes:
        accepted: True if the payment is within tolerance
        reason: Human-readable reason
        expected: Amount the policy expected
        received: Amount that arrived (None if unconvertible)
        deviation: received - expected (None if unconvertible)
        tolerance: Tolerance applied
    """
    accepted: bool
    reason: str
    expected: Decimal
    received: Optional[Decimal]
    deviation: Optional[Decimal]
    tolerance: Decimal


# =============================================================================
# PaymentVerifier
# =============================================================================

class PaymentVerifier:
    """
    Tolerance-based payment verification.

    Pure: holds only the tolerance, never mutates policy state. The funding
    path calls it with the premium as `expected`, the revival path with the
    revival amount.
    """

    def __init__(self, tolerance: Union[Decimal, str, int] = DEFAULT_PAYMENT_TOLERANCE) -> None:
        self._gateway = DecimalGateway()
        tolerance = self._gateway.to_amount(tolerance, "tolerance")
        if tolerance < Decimal("0"):
            raise ValueError(f"tolerance must be non-negative, got: {tolerance}")
        self.tolerance = tolerance

        logger.debug(f"[PAYMENT-VERIFIER] Initialized | tolerance={self.tolerance}")

    def verify(
        self,
        expected: Union[Decimal, str, int],
        received: Union[Decimal, str, int, float, None],
        kind: str = "payment"
    ) -> PaymentVerificationResult:
        """
        Verify a received amount against the expected amount.

        Args:
            expected: Amount the policy expects
            received: Amount actually transferred
            kind: Label for log lines ("premium", "revival", ...)

        Returns:
            PaymentVerificationResult
        """
        expected_amount = self._gateway.to_amount(expected, "expected")

        try:
            received_amount = self._gateway.to_amount(received, "received")
        except ValueError:
            return self._reject(kind, expected_amount, None, None, REASON_INVALID)

        if received is None or received_amount <= Decimal("0"):
            return self._reject(kind, expected_amount, received_amount, None, REASON_INVALID)

        deviation = received_amount - expected_amount

        if abs(deviation) <= self.tolerance:
            logger.debug(
                f"[PAYMENT-VERIFIER] {kind} accepted | "
                f"expected={expected_amount} | received={received_amount} | "
                f"deviation={deviation}"
            )
            return PaymentVerificationResult(
                accepted=True,
                reason=REASON_ACCEPTED,
                expected=expected_amount,
                received=received_amount,
                deviation=deviation,
                tolerance=self.tolerance,
            )

        reason = REASON_UNDERPAID if deviation < 0 else REASON_OVERPAID
        return self._reject(kind, expected_amount, received_amount, deviation, reason)

    def verify_scaled(self, expected_units: int, received_units: int) -> PaymentVerificationResult:
        """
        Verify integer base-unit amounts (fixed-point base 10^18).

        Equivalent to verify() on the converted whole-unit amounts.
        """
        return self.verify(
            self._gateway.from_base_units(expected_units),
            self._gateway.from_base_units(received_units),
        )

    def _reject(
        self,
        kind: str,
        expected: Decimal,
        received: Optional[Decimal],
        deviation: Optional[Decimal],
        reason: str
    ) -> PaymentVerificationResult:
        logger.warning(
            f"[PAYMENT-VERIFIER] {kind} rejected | "
            f"expected={expected} | received={received} | "
            f"deviation={deviation} | tolerance={self.tolerance} | reason={reason}"
        )
        return PaymentVerificationResult(
            accepted=False,
            reason=reason,
            expected=expected,
            received=received,
            deviation=deviation,
            tolerance=self.tolerance,
        )


def verify(
    expected: Union[Decimal, str, int],
    received: Union[Decimal, str, int, float, None]
) -> PaymentVerificationResult:
    """Verify with the default tolerance."""
    return PaymentVerifier().verify(expected, received)


__all__ = [
    "PaymentVerifier",
    "PaymentVerificationResult",
    "PAYMENT_TOLERANCE_UNITS",
    "DEFAULT_PAYMENT_TOLERANCE",
    "verify",
]
