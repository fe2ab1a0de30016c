"""
============================================================================
Parametric Policy - Prometheus Metrics
============================================================================

METRICS EXPOSED
---------------
- policy_events_total: Counter of emitted policy events by type
- policy_operation_failures_total: Counter of rejected operations by error code
- policy_payments_rejected_total: Counter of payments outside tolerance
- policy_upkeep_runs_total: Counter of upkeep cycles by outcome
- policy_balance: Gauge of funds held by a policy instance

ZERO-FLOAT MANDATE
------------------
Amounts are converted from Decimal to float ONLY at the Prometheus
boundary. Internal calculations remain Decimal.

Metric recording never raises: a broken metrics registry must not block
a funding, payout or termination.

============================================================================
"""

import logging
from decimal import Decimal

from prometheus_client import Counter, Gauge

logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

POLICY_EVENTS_TOTAL = Counter(
    "policy_events_total",
    "Total number of policy events emitted",
    ["event"]
)

POLICY_OPERATION_FAILURES_TOTAL = Counter(
    "policy_operation_failures_total",
    "Total number of policy operations rejected",
    ["operation", "error_code"]
)

POLICY_PAYMENTS_REJECTED_TOTAL = Counter(
    "policy_payments_rejected_total",
    "Total number of payments rejected for amount outside tolerance",
    ["kind"]
)

POLICY_UPKEEP_RUNS_TOTAL = Counter(
    "policy_upkeep_runs_total",
    "Total number of upkeep cycles by outcome",
    ["outcome"]
)

POLICY_BALANCE = Gauge(
    "policy_balance",
    "Funds currently held by the policy instance",
    ["policy"]
)


# ============================================================================
# METRIC UPDATE FUNCTIONS
# ============================================================================

def record_event(event: str) -> None:
    try:
        POLICY_EVENTS_TOTAL.labels(event=event).inc()
    except Exception as e:
        logger.error("[OBS-001] Failed to record policy event metric | error=%s", str(e))


def record_failure(operation: str, error_code: str) -> None:
    try:
        POLICY_OPERATION_FAILURES_TOTAL.labels(
            operation=operation, error_code=error_code
        ).inc()
    except Exception as e:
        logger.error("[OBS-001] Failed to record failure metric | error=%s", str(e))


def record_payment_rejected(kind: str) -> None:
    try:
        POLICY_PAYMENTS_REJECTED_TOTAL.labels(kind=kind).inc()
    except Exception as e:
        logger.error("[OBS-001] Failed to record payment metric | error=%s", str(e))


def record_upkeep(outcome: str) -> None:
    try:
        POLICY_UPKEEP_RUNS_TOTAL.labels(outcome=outcome).inc()
    except Exception as e:
        logger.error("[OBS-001] Failed to record upkeep metric | error=%s", str(e))


def update_balance(policy: str, balance: Decimal) -> None:
    """
    Update the balance gauge.

    Args:
        policy: Policy instance address
        balance: Current balance as Decimal
    """
    try:
        POLICY_BALANCE.labels(policy=policy).set(float(balance))
        logger.debug(
            "Metric: policy_balance | policy=%s | balance=%s", policy, str(balance)
        )
    except Exception as e:
        logger.error("[OBS-001] Failed to update balance gauge | error=%s", str(e))
