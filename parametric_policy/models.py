"""
============================================================================
Parametric Policy - Core Data Models
============================================================================

This module defines the data model for one parametric insurance policy:
- PolicyHolder: identity + payout address of the insured party
- RevivalRule: cost and window to reactivate a lapsed policy
- PolicyConfig: construction-time configuration
- PolicyRecord: the mutable state of one policy
- PolicyState: ACTIVE / INACTIVE / TERMINATED, derived from the flags

All amounts are decimal.Decimal with 18 decimal places. All durations and
timestamps are integer seconds.

ERROR CODES:
    - POL-070: Invalid configuration

============================================================================
"""

from decimal import Decimal
from typing import Optional, Dict, Any, List, Tuple
from dataclasses import dataclass, field
from enum import Enum
import logging

from parametric_policy.decimal_gateway import DecimalGateway
from parametric_policy.errors import PolicyConfigurationError

logger = logging.getLogger(__name__)

_gateway = DecimalGateway()


# =============================================================================
# Enums
# =============================================================================

class PolicyState(Enum):
    """
    Policy lifecycle states.

    State Machine:
        ACTIVE → INACTIVE (grace period exceeded)
        ACTIVE → TERMINATED (maturity, withdrawal, admin termination)
        INACTIVE → ACTIVE (revival)
        INACTIVE → TERMINATED (revival window exceeded, admin termination)

    Terminal States: TERMINATED
    """
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    TERMINATED = "TERMINATED"


VALID_TRANSITIONS: Dict[str, List[str]] = {
    "ACTIVE": ["INACTIVE", "TERMINATED"],
    "INACTIVE": ["ACTIVE", "TERMINATED"],
    "TERMINATED": [],  # Terminal state - no outbound transitions
}

TERMINAL_STATES: List[str] = ["TERMINATED"]


def is_valid_transition(current_state: PolicyState, target_state: PolicyState) -> bool:
    """Check a state change against VALID_TRANSITIONS."""
    return target_state.value in VALID_TRANSITIONS[current_state.value]


# =============================================================================
# Value objects
# =============================================================================

@dataclass(frozen=True)
class PolicyHolder:
    """Insured party: display name and payout address."""
    name: str
    address: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "address": self.address}


@dataclass(frozen=True)
class RevivalRule:
    """
    Cost and window to reactivate a lapsed policy.

    revival_period counts seconds after the grace period ends.
    A rule with zero amount and zero period disables revival.
    """
    revival_amount: Decimal
    revival_period: int

    @property
    def enabled(self) -> bool:
        return self.revival_amount > Decimal("0") or self.revival_period > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "revival_amount": str(self.revival_amount),
            "revival_period": self.revival_period,
        }


@dataclass(frozen=True)
class Payout:
    """One outbound transfer made by the policy."""
    to_address: str
    amount: Decimal
    reason: str
    timestamp: int


# =============================================================================
# PolicyConfig
# =============================================================================

@dataclass
class PolicyConfig:
    """
    Construction-time configuration for one policy.

    ============================================================================
    CONFIGURATION PARAMETERS:
    ============================================================================
    - policy_holder: PolicyHolder (REQUIRED)
    - policy_manager_address: receives residual funds on termination (REQUIRED)
    - admins: ordered list of admin addresses
    - policy_type / policy_details: descriptive metadata
    - premium_to_be_paid: amount due per interval (> 0)
    - total_coverage_by_policy: payout on withdrawal (> 0)
    - time_interval: seconds between payments (> 0)
    - policy_tenure: seconds before automatic maturity (>= time_interval)
    - grace_period: seconds after a missed payment before lapse (>= 0)
    - time_before_commencement: informational delay (>= 0, not enforced)
    - revival_rule: RevivalRule
    - oracle_address: external oracle endpoint identity
    - price_feed_address: price-feed source address
    ============================================================================
    """

    policy_holder: PolicyHolder
    policy_manager_address: str
    premium_to_be_paid: Decimal
    total_coverage_by_policy: Decimal
    time_interval: int
    policy_tenure: int
    grace_period: int
    revival_rule: RevivalRule
    admins: List[str] = field(default_factory=list)
    policy_type: str = ""
    policy_details: str = ""
    time_before_commencement: int = 0
    oracle_address: Optional[str] = None
    price_feed_address: Optional[str] = None

    def __post_init__(self) -> None:
        """
        Raises:
            PolicyConfigurationError: If an amount or the revival period is malformed
        """
        try:
            self.premium_to_be_paid = _gateway.to_amount(
                self.premium_to_be_paid, "premium_to_be_paid"
            )
            self.total_coverage_by_policy = _gateway.to_amount(
                self.total_coverage_by_policy, "total_coverage_by_policy"
            )
            self.revival_rule = RevivalRule(
                revival_amount=_gateway.to_amount(self.revival_rule.revival_amount, "revival_amount"),
                revival_period=int(self.revival_rule.revival_period),
            )
        except (TypeError, ValueError) as e:
            logger.error(f"[POL-070] Malformed PolicyConfig value | error={e!r}")
            raise PolicyConfigurationError(f"Malformed policy configuration: {e!r}") from e

    def validate(self) -> None:
        """
        Validate configuration completeness.

        Raises:
            PolicyConfigurationError: If any value is missing or out of range
        """
        errors: List[str] = []

        if not self.policy_holder.address or not self.policy_holder.address.strip():
            errors.append("policy_holder.address must be set")

        if not self.policy_manager_address or not self.policy_manager_address.strip():
            errors.append("policy_manager_address must be set")

        if self.premium_to_be_paid <= Decimal("0"):
            errors.append(f"premium_to_be_paid must be positive, got: {self.premium_to_be_paid}")

        if self.total_coverage_by_policy <= Decimal("0"):
            errors.append(
                f"total_coverage_by_policy must be positive, got: {self.total_coverage_by_policy}"
            )

        if self.time_interval <= 0:
            errors.append(f"time_interval must be positive, got: {self.time_interval}")

        if self.policy_tenure < self.time_interval:
            errors.append(
                f"policy_tenure must be >= time_interval, got: "
                f"{self.policy_tenure} < {self.time_interval}"
            )

        if self.grace_period < 0:
            errors.append(f"grace_period must be non-negative, got: {self.grace_period}")

        if self.time_before_commencement < 0:
            errors.append(
                f"time_before_commencement must be non-negative, got: "
                f"{self.time_before_commencement}"
            )

        if self.revival_rule.revival_period < 0:
            errors.append(
                f"revival_period must be non-negative, got: {self.revival_rule.revival_period}"
            )

        if self.revival_rule.revival_amount < Decimal("0"):
            errors.append(
                f"revival_amount must be non-negative, got: {self.revival_rule.revival_amount}"
            )

        for admin in self.admins:
            if not admin or not str(admin).strip():
                errors.append("admins must not contain blank addresses")
                break

        if errors:
            error_msg = "Policy configuration validation failed: " + "; ".join(errors)
            logger.error(f"[POL-070] {error_msg}")
            raise PolicyConfigurationError(error_msg)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a JSON-compatible dictionary."""
        return {
            "policy_holder": self.policy_holder.to_dict(),
            "policy_manager_address": self.policy_manager_address,
            "admins": list(self.admins),
            "policy_type": self.policy_type,
            "policy_details": self.policy_details,
            "premium_to_be_paid": str(self.premium_to_be_paid),
            "total_coverage_by_policy": str(self.total_coverage_by_policy),
            "time_interval": self.time_interval,
            "policy_tenure": self.policy_tenure,
            "grace_period": self.grace_period,
            "time_before_commencement": self.time_before_commencement,
            "revival_rule": self.revival_rule.to_dict(),
            "oracle_address": self.oracle_address,
            "price_feed_address": self.price_feed_address,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PolicyConfig":
        """
        Create PolicyConfig from a dictionary (e.g. parsed JSON).

        Raises:
            PolicyConfigurationError: If a required key is missing or malformed
        """
        try:
            holder = data["policy_holder"]
            revival = data["revival_rule"]
            return cls(
                policy_holder=PolicyHolder(
                    name=holder.get("name", ""),
                    address=holder["address"],
                ),
                policy_manager_address=data["policy_manager_address"],
                admins=list(data.get("admins", [])),
                policy_type=data.get("policy_type", ""),
                policy_details=data.get("policy_details", ""),
                premium_to_be_paid=data["premium_to_be_paid"],
                total_coverage_by_policy=data["total_coverage_by_policy"],
                time_interval=int(data["time_interval"]),
                policy_tenure=int(data["policy_tenure"]),
                grace_period=int(data["grace_period"]),
                time_before_commencement=int(data.get("time_before_commencement", 0)),
                revival_rule=RevivalRule(
                    revival_amount=revival["revival_amount"],
                    revival_period=int(revival["revival_period"]),
                ),
                oracle_address=data.get("oracle_address"),
                price_feed_address=data.get("price_feed_address"),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"[POL-070] Cannot build PolicyConfig from dict | error={e!r}")
            raise PolicyConfigurationError(f"Malformed policy configuration: {e!r}") from e


# =============================================================================
# PolicyRecord
# =============================================================================

@dataclass
class PolicyRecord:
    """
    Mutable state of one policy.

    Exclusively owned by one PolicyStateMachine; nothing else writes to it.
    `admins` lives in the AdminRegistry and is not duplicated here.
    """

    policy_holder: PolicyHolder
    policy_manager_address: str
    policy_type: str
    policy_details: str
    premium_to_be_paid: Decimal
    total_coverage_by_policy: Decimal
    time_interval: int
    policy_tenure: int
    grace_period: int
    revival_rule: RevivalRule
    time_before_commencement: int
    created_at: int

    # Status flags
    is_policy_active: bool = True
    is_terminated: bool = False
    is_claimable: bool = False
    has_claimed: bool = False
    has_funded_for_current_interval: bool = False
    has_matured: bool = False

    # Clock state
    last_payment_timestamp: int = 0
    elapsed_since_creation: int = 0

    balance: Decimal = field(default_factory=lambda: Decimal("0"))

    @classmethod
    def from_config(cls, config: PolicyConfig, created_at: int) -> "PolicyRecord":
        """Create the initial record; the creation time counts as the last payment."""
        return cls(
            policy_holder=config.policy_holder,
            policy_manager_address=config.policy_manager_address,
            policy_type=config.policy_type,
            policy_details=config.policy_details,
            premium_to_be_paid=config.premium_to_be_paid,
            total_coverage_by_policy=config.total_coverage_by_policy,
            time_interval=config.time_interval,
            policy_tenure=config.policy_tenure,
            grace_period=config.grace_period,
            revival_rule=config.revival_rule,
            time_before_commencement=config.time_before_commencement,
            created_at=created_at,
            last_payment_timestamp=created_at,
        )

    @property
    def state(self) -> PolicyState:
        if self.is_terminated:
            return PolicyState.TERMINATED
        if self.is_policy_active:
            return PolicyState.ACTIVE
        return PolicyState.INACTIVE

    @property
    def payment_due_at(self) -> int:
        """Timestamp at which the next premium is due."""
        return self.last_payment_timestamp + self.time_interval

    @property
    def revival_deadline(self) -> int:
        """Last timestamp at which a lapsed policy may still be revived."""
        return self.payment_due_at + self.grace_period + self.revival_rule.revival_period

    def overdue_seconds(self, now: int) -> int:
        """Seconds past the payment due time (negative while not yet due)."""
        return now - self.payment_due_at

    def revival_window(self) -> Tuple[int, int]:
        return (self.payment_due_at, self.revival_deadline)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/persistence."""
        return {
            "policy_holder": self.policy_holder.to_dict(),
            "policy_manager_address": self.policy_manager_address,
            "policy_type": self.policy_type,
            "policy_details": self.policy_details,
            "premium_to_be_paid": str(self.premium_to_be_paid),
            "total_coverage_by_policy": str(self.total_coverage_by_policy),
            "time_interval": self.time_interval,
            "policy_tenure": self.policy_tenure,
            "grace_period": self.grace_period,
            "revival_rule": self.revival_rule.to_dict(),
            "time_before_commencement": self.time_before_commencement,
            "created_at": self.created_at,
            "is_policy_active": self.is_policy_active,
            "is_terminated": self.is_terminated,
            "is_claimable": self.is_claimable,
            "has_claimed": self.has_claimed,
            "has_funded_for_current_interval": self.has_funded_for_current_interval,
            "has_matured": self.has_matured,
            "last_payment_timestamp": self.last_payment_timestamp,
            "elapsed_since_creation": self.elapsed_since_creation,
            "balance": str(self.balance),
            "state": self.state.value,
        }


__all__ = [
    "PolicyState",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "is_valid_transition",
    "PolicyHolder",
    "RevivalRule",
    "Payout",
    "PolicyConfig",
    "PolicyRecord",
]
