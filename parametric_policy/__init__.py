"""
============================================================================
Parametric Policy - Lifecycle Engine
============================================================================

Funding, upkeep, lapse, revival, termination, withdrawal and claim
recording for a single parametric insurance policy.

============================================================================
"""

from parametric_policy.errors import (
    PolicyErrorCode,
    PolicyError,
    OnlyAdminAllowed,
    OnlyOracleAllowed,
    PolicyTerminated,
    PolicyActive,
    PolicyNotActive,
    PolicyAlreadyClaimed,
    PolicyNotClaimable,
    PolicyNotInGracePeriod,
    PolicyNotMatured,
    PolicyNotRevivable,
    AmountNotCorrect,
    PremiumAmountNotCorrect,
    RevivalAmountNotCorrect,
    InsufficientBalance,
    OracleUnavailable,
    PriceFeedError,
    UnknownRequest,
    RequestAlreadyFulfilled,
    PolicyConfigurationError,
)

from parametric_policy.models import (
    PolicyState,
    VALID_TRANSITIONS,
    PolicyHolder,
    RevivalRule,
    Payout,
    PolicyConfig,
    PolicyRecord,
)

from parametric_policy.payment_verifier import (
    PaymentVerifier,
    PaymentVerificationResult,
    DEFAULT_PAYMENT_TOLERANCE,
)

from parametric_policy.admin_registry import AdminRegistry

from parametric_policy.events import (
    EventLog,
    PolicyEvent,
    PolicyEventType,
)

from parametric_policy.oracle import (
    PriceRound,
    PriceFeed,
    StaticPriceFeed,
    HttpPriceFeed,
    PriceOracle,
)

from parametric_policy.state_machine import (
    PolicyStateMachine,
    AdministrativeOverrides,
    InMemoryPayoutSink,
    create_policy_from_settings,
)

from parametric_policy.upkeep import (
    UpkeepTarget,
    UpkeepWorker,
    create_upkeep_worker_from_settings,
)

from parametric_policy.external_data import (
    ExternalDataRequest,
    ExternalDataRequester,
)

from parametric_policy.config import (
    EngineSettings,
    get_engine_settings,
    reset_engine_settings,
)

__version__ = "0.1.0"

__all__ = [
    # Errors
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
    # Models
    "PolicyState",
    "VALID_TRANSITIONS",
    "PolicyHolder",
    "RevivalRule",
    "Payout",
    "PolicyConfig",
    "PolicyRecord",
    # Components
    "PaymentVerifier",
    "PaymentVerificationResult",
    "DEFAULT_PAYMENT_TOLERANCE",
    "AdminRegistry",
    "EventLog",
    "PolicyEvent",
    "PolicyEventType",
    "PriceRound",
    "PriceFeed",
    "StaticPriceFeed",
    "HttpPriceFeed",
    "PriceOracle",
    "PolicyStateMachine",
    "AdministrativeOverrides",
    "InMemoryPayoutSink",
    "UpkeepTarget",
    "UpkeepWorker",
    "ExternalDataRequest",
    "ExternalDataRequester",
    # Configuration
    "EngineSettings",
    "get_engine_settings",
    "reset_engine_settings",
    # Factory functions
    "create_policy_from_settings",
    "create_upkeep_worker_from_settings",
]
