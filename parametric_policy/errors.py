"""
============================================================================
Parametric Policy - Error Taxonomy
============================================================================

Every failure raised by the policy engine derives from PolicyError and
carries a POL-xxx error code. The code is also prefixed to the message so
log lines and exception text can be correlated.

ERROR CODES:
    - POL-001: Caller is not a policy admin
    - POL-002: Caller is not the oracle a request was sent to
    - POL-010: Policy is terminated
    - POL-011: Policy is active
    - POL-012: Policy is not active
    - POL-013: Policy already claimed
    - POL-014: Policy not claimable
    - POL-020: Outside grace + revival window
    - POL-021: Policy has not matured / terminated
    - POL-022: Policy has no revival rule
    - POL-030: Premium amount outside tolerance
    - POL-031: Revival amount outside tolerance
    - POL-040: Insufficient balance
    - POL-041: Residual sweep to the policy manager failed
    - POL-050: Oracle unavailable
    - POL-051: Price feed request failed
    - POL-060: Unknown external data request
    - POL-061: External data request already fulfilled
    - POL-070: Invalid configuration

============================================================================
"""

from decimal import Decimal
from typing import Optional


class PolicyErrorCode:
    """Policy engine error codes for audit logging."""
    ONLY_ADMIN_ALLOWED = "POL-001"
    ONLY_ORACLE_ALLOWED = "POL-002"
    POLICY_TERMINATED = "POL-010"
    POLICY_ACTIVE = "POL-011"
    POLICY_NOT_ACTIVE = "POL-012"
    POLICY_ALREADY_CLAIMED = "POL-013"
    POLICY_NOT_CLAIMABLE = "POL-014"
    NOT_IN_GRACE_PERIOD = "POL-020"
    POLICY_NOT_MATURED = "POL-021"
    POLICY_NOT_REVIVABLE = "POL-022"
    PREMIUM_AMOUNT_NOT_CORRECT = "POL-030"
    REVIVAL_AMOUNT_NOT_CORRECT = "POL-031"
    INSUFFICIENT_BALANCE = "POL-040"
    SWEEP_FAILED = "POL-041"
    ORACLE_UNAVAILABLE = "POL-050"
    PRICE_FEED_ERROR = "POL-051"
    UNKNOWN_REQUEST = "POL-060"
    REQUEST_ALREADY_FULFILLED = "POL-061"
    CONFIG_INVALID = "POL-070"


class PolicyError(Exception):
    """
    Base exception for all policy engine failures.

    Args:
        message: Human-readable error message
        error_code: POL-xxx error code
    """

    default_code = "POL-000"

    def __init__(self, message: str = "", error_code: Optional[str] = None):
        self.error_code = error_code or self.default_code
        self.message = message or self.__class__.__name__
        super().__init__(f"[{self.error_code}] {self.message}")


# =============================================================================
# Authorization
# =============================================================================

class OnlyAdminAllowed(PolicyError):
    default_code = PolicyErrorCode.ONLY_ADMIN_ALLOWED


class OnlyOracleAllowed(PolicyError):
    default_code = PolicyErrorCode.ONLY_ORACLE_ALLOWED


# =============================================================================
# State preconditions
# =============================================================================

class PolicyTerminated(PolicyError):
    default_code = PolicyErrorCode.POLICY_TERMINATED


class PolicyActive(PolicyError):
    default_code = PolicyErrorCode.POLICY_ACTIVE


class PolicyNotActive(PolicyError):
    default_code = PolicyErrorCode.POLICY_NOT_ACTIVE


class PolicyAlreadyClaimed(PolicyError):
    default_code = PolicyErrorCode.POLICY_ALREADY_CLAIMED


class PolicyNotClaimable(PolicyError):
    default_code = PolicyErrorCode.POLICY_NOT_CLAIMABLE


# =============================================================================
# Window violations
# =============================================================================

class PolicyNotInGracePeriod(PolicyError):
    default_code = PolicyErrorCode.NOT_IN_GRACE_PERIOD


class PolicyNotMatured(PolicyError):
    default_code = PolicyErrorCode.POLICY_NOT_MATURED


class PolicyNotRevivable(PolicyError):
    default_code = PolicyErrorCode.POLICY_NOT_REVIVABLE


# =============================================================================
# Amount mismatches
# =============================================================================

class AmountNotCorrect(PolicyError):
    """Payment amount outside tolerance of the expected amount."""

    def __init__(
        self,
        expected: Decimal,
        received: Decimal,
        message: str = "",
        error_code: Optional[str] = None,
    ):
        self.expected = expected
        self.received = received
        super().__init__(
            message or f"expected={expected} received={received}",
            error_code,
        )


class PremiumAmountNotCorrect(AmountNotCorrect):
    default_code = PolicyErrorCode.PREMIUM_AMOUNT_NOT_CORRECT


class RevivalAmountNotCorrect(AmountNotCorrect):
    default_code = PolicyErrorCode.REVIVAL_AMOUNT_NOT_CORRECT


# =============================================================================
# Resources
# =============================================================================

class InsufficientBalance(PolicyError):
    """Balance below the amount a payout requires."""

    default_code = PolicyErrorCode.INSUFFICIENT_BALANCE

    def __init__(self, available: Decimal, requested: Decimal):
        self.available = available
        self.requested = requested
        super().__init__(f"available={available} requested={requested}")


# =============================================================================
# Oracle / external data
# =============================================================================

class OracleUnavailable(PolicyError):
    default_code = PolicyErrorCode.ORACLE_UNAVAILABLE


class PriceFeedError(PolicyError):
    default_code = PolicyErrorCode.PRICE_FEED_ERROR


class UnknownRequest(PolicyError):
    default_code = PolicyErrorCode.UNKNOWN_REQUEST


class RequestAlreadyFulfilled(PolicyError):
    default_code = PolicyErrorCode.REQUEST_ALREADY_FULFILLED


# =============================================================================
# Configuration
# =============================================================================

class PolicyConfigurationError(PolicyError):
    default_code = PolicyErrorCode.CONFIG_INVALID


__all__ = [
    "PolicyErrorCode",
    "PolicyError",
    "OnlyAdminAllowed",
    "OnlyOracleAllowed",
    "PolicyTerminated",
    "PolicyActive",
    "PolicyNotActive",
    "PolicyAlreadyClaimed",
    "PolicyNotClaimable",
    "PolicyNotInGracePeriod",
    "PolicyNotMatured",
    "PolicyNotRevivable",
    "AmountNotCorrect",
    "PremiumAmountNotCorrect",
    "RevivalAmountNotCorrect",
    "InsufficientBalance",
    "OracleUnavailable",
    "PriceFeedError",
    "UnknownRequest",
    "RequestAlreadyFulfilled",
    "PolicyConfigurationError",
]
