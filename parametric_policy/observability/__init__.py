"""
============================================================================
Parametric Policy - Observability Module
============================================================================
"""

from parametric_policy.observability.metrics import (
    POLICY_EVENTS_TOTAL,
    POLICY_OPERATION_FAILURES_TOTAL,
    POLICY_PAYMENTS_REJECTED_TOTAL,
    POLICY_UPKEEP_RUNS_TOTAL,
    POLICY_BALANCE,
    record_event,
    record_failure,
    record_payment_rejected,
    record_upkeep,
    update_balance,
)

__all__ = [
    "POLICY_EVENTS_TOTAL",
    "POLICY_OPERATION_FAILURES_TOTAL",
    "POLICY_PAYMENTS_REJECTED_TOTAL",
    "POLICY_UPKEEP_RUNS_TOTAL",
    "POLICY_BALANCE",
    "record_event",
    "record_failure",
    "record_payment_rejected",
    "record_upkeep",
    "update_balance",
]
