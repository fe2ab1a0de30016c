"""
============================================================================
Parametric Policy - Policy State Machine
============================================================================

Owns every legal transition of one policy record and enforces its time
windows and role checks.

POLICY STATE MACHINE:
    ACTIVE → INACTIVE    (advance: overdue beyond the grace period)
    INACTIVE → ACTIVE    (revive: revival amount paid inside the window)
    ACTIVE → TERMINATED  (advance: tenure reached; terminate; withdraw)
    INACTIVE → TERMINATED (advance: overdue beyond grace + revival; terminate)

    Terminal State: TERMINATED (funds swept to the policy manager)

TIME WINDOWS (all relative to the payment due time):
    due       = last_payment_timestamp + time_interval
    overdue   = now - due
    lapse     : overdue > grace_period
    expiry    : overdue > grace_period + revival_period
    revivable : now <= due + grace_period + revival_period

ATOMICITY:
    Every precondition is checked before any field changes. Operations
    run under one re-entrant lock, so the upkeep worker thread and callers
    never interleave. advance() snapshots the record and restores it if a
    payout fails, and never raises. withdraw() terminates the policy once the
    holder is paid, even if the residual sweep then fails.

ERROR CODES:
    - POL-001 .. POL-070, see parametric_policy.errors

============================================================================
"""

from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple
from dataclasses import replace
import logging
import threading
import uuid

from parametric_policy.admin_registry import AdminRegistry
from parametric_policy.errors import (
    InsufficientBalance,
    OracleUnavailable,
    PolicyActive,
    PolicyAlreadyClaimed,
    PolicyError,
    PolicyErrorCode,
    PolicyNotActive,
    PolicyNotClaimable,
    PolicyNotInGracePeriod,
    PolicyNotMatured,
    PolicyNotRevivable,
    PolicyTerminated,
    PremiumAmountNotCorrect,
    RevivalAmountNotCorrect,
)
from parametric_policy.events import EventLog, PolicyEvent, PolicyEventType
from parametric_policy.models import (
    Payout,
    PolicyConfig,
    PolicyHolder,
    PolicyRecord,
    PolicyState,
    RevivalRule,
    is_valid_transition,
)
from parametric_policy.observability.metrics import (
    record_event,
    record_failure,
    record_payment_rejected,
    record_upkeep,
    update_balance,
)
from parametric_policy.oracle.price_oracle import PriceOracle
from parametric_policy.payment_verifier import PaymentVerifier
from parametric_policy.upkeep import UpkeepTarget

logger = logging.getLogger(__name__)


# =============================================================================
# Upkeep reasons
# =============================================================================

REASON_TERMINATED = "policy terminated"
REASON_REVIVAL_EXPIRED = "revival window expired"
REASON_PAYMENT_DUE = "premium payment due"
REASON_INTERVAL_ELAPSED = "funding interval elapsed"
REASON_NOT_DUE = "premium not due"


# =============================================================================
# Payout sinks
# =============================================================================

PayoutSink = Callable[[str, Decimal], None]


class InMemoryPayoutSink:
    """Records transfers instead of moving funds. Default sink."""

    def __init__(self) -> None:
        self.transfers: List[Tuple[str, Decimal]] = []

    def __call__(self, to_address: str, amount: Decimal) -> None:
        self.transfers.append((to_address, amount))

    def total_to(self, address: str) -> Decimal:
        return sum((amount for to, amount in self.transfers if to == address), Decimal("0"))


# =============================================================================
# PolicyStateMachine
# =============================================================================

class PolicyStateMachine(UpkeepTarget):
    """
    Lifecycle engine for one parametric insurance policy.

    Example Usage:
        policy = PolicyStateMachine(config, address="0xpolicy", created_at=0)
        policy.fund(Decimal("100"), now=0)
        needed, reason = policy.check_upkeep(now=31 * DAY)
        if needed:
            policy.perform_upkeep(now=31 * DAY)
    """

    def __init__(
        self,
        config: PolicyConfig,
        created_at: int,
        address: Optional[str] = None,
        oracle: Optional[PriceOracle] = None,
        payout_sink: Optional[PayoutSink] = None,
        verifier: Optional[PaymentVerifier] = None,
    ) -> None:
        """
        Args:
            config: Policy configuration (validated here)
            created_at: Construction timestamp, seconds
            address: Identity of this policy instance (generated if None)
            oracle: Price oracle for reference-currency quotes
            payout_sink: Callable moving funds out of the policy
            verifier: Payment verifier (default tolerance if None)

        Raises:
            PolicyConfigurationError: If config is invalid
        """
        config.validate()

        self.address = address or f"policy-{uuid.uuid4().hex[:16]}"
        self.oracle_address = config.oracle_address
        self.price_feed_address = config.price_feed_address
        self._record = PolicyRecord.from_config(config, created_at)
        self._last_upkeep_timestamp = created_at
        self._admins = AdminRegistry(
            config.admins,
            holder_address=config.policy_holder.address,
            instance_address=self.address,
        )
        self._oracle = oracle
        self._payout_sink: PayoutSink = payout_sink or InMemoryPayoutSink()
        self._verifier = verifier or PaymentVerifier()
        self._events = EventLog(self.address)
        self._events.subscribe(lambda event: record_event(event.event_type.value))
        self._payouts: List[Payout] = []
        self._lock = threading.RLock()
        self.overrides = AdministrativeOverrides(self)

        logger.info(
            f"[POLICY] Created | policy={self.address} | "
            f"holder={config.policy_holder.address} | type={config.policy_type} | "
            f"premium={config.premium_to_be_paid} | coverage={config.total_coverage_by_policy} | "
            f"interval={config.time_interval} | tenure={config.policy_tenure} | "
            f"grace={config.grace_period} | revival_period={config.revival_rule.revival_period}"
        )

    # =========================================================================
    # Funding
    # =========================================================================

    def fund(self, amount: Decimal, now: int, caller: Optional[str] = None) -> PolicyEvent:
        """
        Pay the premium for the current interval. Any caller may fund.

        Raises:
            PolicyTerminated: Policy is terminated
            PolicyNotActive: Policy has lapsed (use revive)
            PremiumAmountNotCorrect: Amount outside tolerance of the premium
        """
        with self._lock:
            record = self._record
            self._require_not_terminated("fund")

            if not record.is_policy_active:
                raise self._reject("fund", PolicyNotActive("Policy lapsed; revive it first"))

            result = self._verifier.verify(record.premium_to_be_paid, amount, kind="premium")
            if not result.accepted:
                record_payment_rejected("premium")
                raise self._reject(
                    "fund",
                    PremiumAmountNotCorrect(record.premium_to_be_paid, result.received),
                )

            if record.has_funded_for_current_interval:
                logger.warning(
                    f"[POLICY] Additional premium in current interval | "
                    f"policy={self.address} | amount={result.received}"
                )

            record.balance += result.received
            record.last_payment_timestamp = now
            record.has_funded_for_current_interval = True
            update_balance(self.address, record.balance)

            return self._events.append(
                PolicyEventType.POLICY_FUNDED,
                now,
                {"amount": result.received, "payer": caller},
            )

    # =========================================================================
    # Scheduler hooks
    # =========================================================================

    def check_due(self, now: int) -> Tuple[bool, str]:
        """
        Pure query: does the policy need an upkeep cycle?

        The first matching reason wins:
            terminated               -> (False, "policy terminated")
            past the revival window  -> (False, "revival window expired")
            premium overdue          -> (True,  "premium payment due")
            interval since last cycle-> (True,  "funding interval elapsed")
            otherwise                -> (False, "premium not due")
        """
        with self._lock:
            record = self._record

            if record.is_terminated:
                return (False, REASON_TERMINATED)

            if now > record.revival_deadline:
                return (False, REASON_REVIVAL_EXPIRED)

            if now - record.last_payment_timestamp > record.time_interval:
                return (True, REASON_PAYMENT_DUE)

            if now - self._last_upkeep_timestamp >= record.time_interval:
                return (True, REASON_INTERVAL_ELAPSED)

            return (False, REASON_NOT_DUE)

    def check_upkeep(self, now: int) -> Tuple[bool, str]:
        """Scheduler-facing alias of check_due()."""
        needed, reason = self.check_due(now)
        logger.debug(
            f"[UPKEEP] check | policy={self.address} | now={now} | "
            f"needed={needed} | reason={reason}"
        )
        return (needed, reason)

    def perform_upkeep(self, now: int) -> bool:
        """
        Scheduler-facing state step. Re-checks check_due() and advances
        when it reports an upkeep is needed, or when the revival window has
        closed on a policy that was never terminated (missed upkeeps).

        Returns:
            True if advance() ran
        """
        with self._lock:
            needed, reason = self.check_due(now)
            if reason == REASON_REVIVAL_EXPIRED:
                logger.warning(
                    f"[UPKEEP] Revival window closed without termination | "
                    f"policy={self.address} | now={now} | "
                    f"deadline={self._record.revival_deadline}"
                )
                needed = True

            if not needed:
                logger.info(
                    f"[UPKEEP] Skipped | policy={self.address} | now={now} | reason={reason}"
                )
                record_upkeep("skipped")
                return False

            self.advance(now)
            return True

    def advance(self, now: int) -> PolicyState:
        """
        Advance the policy by one funding interval.

        Never raises. On a terminated record this is a logged no-op.

        Returns:
            The policy state after the step
        """
        with self._lock:
            if self._record.is_terminated:
                logger.info(
                    f"[UPKEEP] Advance ignored, policy terminated | "
                    f"policy={self.address} | now={now}"
                )
                record_upkeep("terminated")
                return self._record.state

            snapshot = replace(self._record)
            last_upkeep = self._last_upkeep_timestamp
            record = self._record

            try:
                record.has_funded_for_current_interval = False
                record.elapsed_since_creation += record.time_interval
                self._last_upkeep_timestamp = now

                if record.elapsed_since_creation >= record.policy_tenure:
                    record.has_matured = True
                    self._terminate(now, reason="matured")
                    self._events.append(
                        PolicyEventType.POLICY_MATURED,
                        now,
                        {"elapsed_since_creation": record.elapsed_since_creation},
                    )
                    record_upkeep("matured")
                    return record.state

                overdue = record.overdue_seconds(now)
                outcome = "advanced"

                if overdue > record.grace_period:
                    if record.is_policy_active:
                        self._transition(PolicyState.INACTIVE)
                        logger.warning(
                            f"[POLICY] Lapsed past grace period | policy={self.address} | "
                            f"overdue={overdue} | grace={record.grace_period}"
                        )
                        outcome = "lapsed"

                    if overdue > record.grace_period + record.revival_rule.revival_period:
                        self._terminate(now, reason="revival window expired")
                        outcome = "expired"

                record_upkeep(outcome)
                logger.info(
                    f"[UPKEEP] Advanced | policy={self.address} | now={now} | "
                    f"elapsed={record.elapsed_since_creation} | state={record.state.value} | "
                    f"outcome={outcome}"
                )
                return record.state

            except Exception as e:
                self._record = snapshot
                self._last_upkeep_timestamp = last_upkeep
                logger.error(
                    f"[UPKEEP] Advance failed, record restored | "
                    f"policy={self.address} | now={now} | error={e!r}"
                )
                record_upkeep("failed")
                return self._record.state

    # =========================================================================
    # Revival
    # =========================================================================

    def revive(self, amount: Decimal, now: int, caller: Optional[str] = None) -> PolicyEvent:
        """
        Reactivate a lapsed policy by paying the revival amount.

        Raises:
            PolicyTerminated: Policy is terminated
            PolicyAlreadyClaimed: Policy has been claimed
            PolicyActive: Policy has not lapsed
            PolicyNotRevivable: Policy has no revival rule
            PolicyNotInGracePeriod: Outside the revival window
            RevivalAmountNotCorrect: Amount outside tolerance of the revival amount
        """
        with self._lock:
            record = self._record
            self._require_not_terminated("revive")

            if record.has_claimed:
                raise self._reject("revive", PolicyAlreadyClaimed("Claimed policies cannot be revived"))

            if record.is_policy_active:
                raise self._reject("revive", PolicyActive("Policy has not lapsed"))

            if not record.revival_rule.enabled:
                raise self._reject("revive", PolicyNotRevivable("Policy has no revival rule"))

            if now < record.last_payment_timestamp or now > record.revival_deadline:
                raise self._reject(
                    "revive",
                    PolicyNotInGracePeriod(
                        f"now={now} outside revival window "
                        f"[{record.last_payment_timestamp}, {record.revival_deadline}]"
                    ),
                )

            expected = record.revival_rule.revival_amount
            result = self._verifier.verify(expected, amount, kind="revival")
            if not result.accepted:
                record_payment_rejected("revival")
                raise self._reject("revive", RevivalAmountNotCorrect(expected, result.received))

            self._transition(PolicyState.ACTIVE)
            record.balance += result.received
            record.last_payment_timestamp = now
            record.has_funded_for_current_interval = True
            update_balance(self.address, record.balance)

            return self._events.append(
                PolicyEventType.POLICY_REVIVED,
                now,
                {"amount": result.received, "payer": caller},
            )

    revive_policy = revive

    # =========================================================================
    # Termination / withdrawal
    # =========================================================================

    def terminate(self, now: int, caller: Optional[str]) -> PolicyEvent:
        """
        Terminate the policy and sweep its balance to the policy manager.

        Raises:
            OnlyAdminAllowed: Caller is not an admin
            PolicyTerminated: Already terminated
        """
        with self._lock:
            self._require_admin(caller, "terminate")
            self._require_not_terminated("terminate")
            return self._terminate(now, reason="admin")

    terminate_policy = terminate

    def withdraw(self, now: int, caller: Optional[str]) -> PolicyEvent:
        """
        Pay the coverage to the policy holder, then terminate.

        Raises:
            OnlyAdminAllowed: Caller is not an admin
            PolicyTerminated: Already terminated
            InsufficientBalance: Balance below total_coverage_by_policy
        """
        with self._lock:
            record = self._record
            self._require_admin(caller, "withdraw")
            self._require_not_terminated("withdraw")

            coverage = record.total_coverage_by_policy
            if record.balance < coverage:
                raise self._reject("withdraw", InsufficientBalance(record.balance, coverage))

            self._pay(record.policy_holder.address, coverage, "withdraw", now)
            record.balance -= coverage
            update_balance(self.address, record.balance)

            withdraw_event = self._events.append(
                PolicyEventType.POLICY_WITHDRAW,
                now,
                {"amount": coverage, "to": record.policy_holder.address},
            )

            try:
                self._terminate(now, reason="withdraw")
            except Exception as e:
                # Coverage is already paid: the policy closes with the residual unswept
                self._transition(PolicyState.TERMINATED)
                logger.error(
                    f"[{PolicyErrorCode.SWEEP_FAILED}] Residual sweep failed, policy terminated | "
                    f"policy={self.address} | unswept={record.balance} | "
                    f"manager={record.policy_manager_address} | error={e!r}"
                )
                record_failure("withdraw", PolicyErrorCode.SWEEP_FAILED)
                self._events.append(
                    PolicyEventType.TERMINATE_POLICY,
                    now,
                    {
                        "reason": "withdraw",
                        "swept_amount": Decimal("0"),
                        "unswept_amount": record.balance,
                        "to": record.policy_manager_address,
                    },
                )
                raise
            return withdraw_event

    # =========================================================================
    # Claims
    # =========================================================================

    def record_claim(self, now: int, caller: Optional[str]) -> PolicyEvent:
        """
        Record a claim decision taken off-engine.

        Raises:
            OnlyAdminAllowed: Caller is not an admin
            PolicyAlreadyClaimed: Already claimed
            PolicyNotClaimable: Policy not marked claimable
            PolicyActive: Policy still active
            PolicyNotMatured: Policy not yet terminated
        """
        with self._lock:
            record = self._record
            self._require_admin(caller, "record_claim")

            if record.has_claimed:
                raise self._reject("record_claim", PolicyAlreadyClaimed("Policy already claimed"))

            if not record.is_claimable:
                raise self._reject("record_claim", PolicyNotClaimable("Policy not marked claimable"))

            if record.is_policy_active:
                raise self._reject("record_claim", PolicyActive("Policy still active"))

            if not record.is_terminated:
                raise self._reject("record_claim", PolicyNotMatured("Policy not yet terminated"))

            record.has_claimed = True
            return self._events.append(
                PolicyEventType.POLICY_CLAIMED,
                now,
                {"claimed": True, "recorded_by": caller},
            )

    make_claim = record_claim

    # =========================================================================
    # Queries
    # =========================================================================

    def get_premium_in_reference_currency(self, now: Optional[int] = None) -> Decimal:
        """
        Raises:
            OracleUnavailable: No oracle configured, or the oracle failed
        """
        if self._oracle is None:
            logger.error(f"[POL-050] No price oracle configured | policy={self.address}")
            raise OracleUnavailable("No price oracle configured")
        return self._oracle.quote_premium_in_reference_currency(
            self._record.premium_to_be_paid, now
        )

    @property
    def state(self) -> PolicyState:
        return self._record.state

    @property
    def record(self) -> PolicyRecord:
        """Copy of the current record."""
        with self._lock:
            return replace(self._record)

    @property
    def admins(self) -> Tuple[str, ...]:
        return self._admins.admins

    def is_admin(self, caller: Optional[str]) -> bool:
        return self._admins.is_admin(caller)

    @property
    def events(self) -> List[PolicyEvent]:
        return self._events.events()

    @property
    def event_log(self) -> EventLog:
        return self._events

    @property
    def payouts(self) -> List[Payout]:
        return list(self._payouts)

    @property
    def policy_holder(self) -> PolicyHolder:
        return self._record.policy_holder

    @property
    def policy_manager_address(self) -> str:
        return self._record.policy_manager_address

    @property
    def policy_type(self) -> str:
        return self._record.policy_type

    @property
    def policy_details(self) -> str:
        return self._record.policy_details

    @property
    def premium_to_be_paid(self) -> Decimal:
        return self._record.premium_to_be_paid

    @property
    def total_coverage_by_policy(self) -> Decimal:
        return self._record.total_coverage_by_policy

    @property
    def time_interval(self) -> int:
        return self._record.time_interval

    @property
    def policy_tenure(self) -> int:
        return self._record.policy_tenure

    @property
    def grace_period(self) -> int:
        return self._record.grace_period

    @property
    def revival_rule(self) -> RevivalRule:
        return self._record.revival_rule

    @property
    def time_before_commencement(self) -> int:
        return self._record.time_before_commencement

    @property
    def is_policy_active(self) -> bool:
        return self._record.is_policy_active

    @property
    def is_terminated(self) -> bool:
        return self._record.is_terminated

    @property
    def is_claimable(self) -> bool:
        return self._record.is_claimable

    @property
    def has_claimed(self) -> bool:
        return self._record.has_claimed

    @property
    def has_funded_for_current_interval(self) -> bool:
        return self._record.has_funded_for_current_interval

    @property
    def has_matured(self) -> bool:
        return self._record.has_matured

    @property
    def last_payment_timestamp(self) -> int:
        return self._record.last_payment_timestamp

    @property
    def elapsed_since_creation(self) -> int:
        return self._record.elapsed_since_creation

    @property
    def balance(self) -> Decimal:
        return self._record.balance

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            data = self._record.to_dict()
        data["address"] = self.address
        data["admins"] = list(self.admins)
        data["oracle_address"] = self.oracle_address
        data["price_feed_address"] = self.price_feed_address
        return data

    # =========================================================================
    # Internals
    # =========================================================================

    def _terminate(self, now: int, reason: str) -> PolicyEvent:
        """Sweep the balance to the manager and mark the policy terminated."""
        record = self._record
        swept = record.balance

        if swept > Decimal("0"):
            self._pay(record.policy_manager_address, swept, f"terminate:{reason}", now)

        record.balance = Decimal("0")
        self._transition(PolicyState.TERMINATED)
        update_balance(self.address, record.balance)

        logger.warning(
            f"[POLICY] Terminated | policy={self.address} | reason={reason} | "
            f"swept={swept} | manager={record.policy_manager_address}"
        )

        return self._events.append(
            PolicyEventType.TERMINATE_POLICY,
            now,
            {"reason": reason, "swept_amount": swept, "to": record.policy_manager_address},
        )

    def _pay(self, to_address: str, amount: Decimal, reason: str, now: int) -> None:
        self._payout_sink(to_address, amount)
        self._payouts.append(Payout(to_address=to_address, amount=amount, reason=reason, timestamp=now))
        logger.info(
            f"[POLICY] Payout | policy={self.address} | to={to_address} | "
            f"amount={amount} | reason={reason}"
        )

    def _transition(self, target: PolicyState) -> None:
        record = self._record
        current = record.state
        if current == target:
            return

        if not is_valid_transition(current, target):
            raise PolicyTerminated(f"Invalid transition {current.value} → {target.value}")

        if target == PolicyState.TERMINATED:
            record.is_terminated = True
            record.is_policy_active = False
        else:
            record.is_policy_active = target == PolicyState.ACTIVE

        logger.info(
            f"[POLICY] Transition {current.value} → {target.value} | policy={self.address}"
        )

    def _require_not_terminated(self, operation: str) -> None:
        if self._record.is_terminated:
            raise self._reject(operation, PolicyTerminated("Policy is terminated"))

    def _require_admin(self, caller: Optional[str], operation: str) -> None:
        try:
            self._admins.require_admin(caller, operation)
        except PolicyError as e:
            record_failure(operation, e.error_code)
            raise

    def _reject(self, operation: str, error: PolicyError) -> PolicyError:
        logger.error(
            f"[{error.error_code}] {operation} rejected | "
            f"policy={self.address} | state={self._record.state.value} | error={error.message}"
        )
        record_failure(operation, error.error_code)
        return error


# =============================================================================
# Administrative overrides
# =============================================================================

class AdministrativeOverrides:
    """
    Direct flag writes for admins.

    These BYPASS the state machine: they do not sweep funds, emit events or
    check transitions. Activating a terminated policy, for example, is
    allowed and only logged. The one exception is has_claimed, which never
    goes back from True to False.
    """

    def __init__(self, machine: PolicyStateMachine) -> None:
        self._machine = machine

    def set_termination(self, value: bool, caller: Optional[str]) -> None:
        self._set("is_terminated", value, caller)

    def set_claimable(self, value: bool, caller: Optional[str]) -> None:
        self._set("is_claimable", value, caller)

    def set_claimed(self, value: bool, caller: Optional[str]) -> None:
        machine = self._machine
        with machine._lock:
            if machine._record.has_claimed and not value:
                machine._require_admin(caller, "set_claimed")
                raise machine._reject(
                    "set_claimed", PolicyAlreadyClaimed("has_claimed cannot be reset")
                )
            self._set("has_claimed", value, caller)

    def set_policy_active(self, value: bool, caller: Optional[str]) -> None:
        self._set("is_policy_active", value, caller)

    def set_funded_for_interval(self, value: bool, caller: Optional[str]) -> None:
        self._set("has_funded_for_current_interval", value, caller)

    def _set(self, flag: str, value: bool, caller: Optional[str]) -> None:
        machine = self._machine
        with machine._lock:
            machine._require_admin(caller, f"set:{flag}")
            record = machine._record
            previous = getattr(record, flag)
            setattr(record, flag, bool(value))

            logger.warning(
                f"[POLICY-OVERRIDE] {flag} {previous} → {bool(value)} | "
                f"policy={machine.address} | caller={caller} | state={record.state.value}"
            )


# =============================================================================
# Factory Function
# =============================================================================

def create_policy_from_settings(
    config: PolicyConfig,
    created_at: int,
    address: Optional[str] = None,
    payout_sink: Optional[PayoutSink] = None,
    settings=None,
) -> PolicyStateMachine:
    """
    Create a PolicyStateMachine wired from engine settings: payment
    tolerance, and an HTTP price oracle when POLICY_ORACLE_URL is set.
    """
    from parametric_policy.config import get_engine_settings
    from parametric_policy.oracle.price_oracle import create_price_oracle_from_settings

    if settings is None:
        settings = get_engine_settings(validate=False)

    return PolicyStateMachine(
        config,
        created_at=created_at,
        address=address,
        oracle=create_price_oracle_from_settings(settings, config.price_feed_address),
        payout_sink=payout_sink,
        verifier=PaymentVerifier(settings.payment_tolerance),
    )


__all__ = [
    "PolicyStateMachine",
    "create_policy_from_settings",
    "AdministrativeOverrides",
    "InMemoryPayoutSink",
    "PayoutSink",
    "REASON_TERMINATED",
    "REASON_REVIVAL_EXPIRED",
    "REASON_PAYMENT_DUE",
    "REASON_INTERVAL_ELAPSED",
    "REASON_NOT_DUE",
]
