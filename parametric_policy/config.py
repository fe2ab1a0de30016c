"""
============================================================================
Parametric Policy - Engine Settings
============================================================================

Runtime settings for the policy engine, read from the environment (a
.env file is loaded first when present).

ENVIRONMENT VARIABLES:
    - POLICY_PAYMENT_TOLERANCE: Absolute payment tolerance in whole units (default: 0.0001)
    - POLICY_ORACLE_URL: Price-feed endpoint for HttpPriceFeed (optional)
    - POLICY_ORACLE_TIMEOUT_SECONDS: HTTP timeout for the price feed (default: 10)
    - POLICY_ORACLE_MAX_STALENESS_SECONDS: Reject older price rounds (optional, unset = no check)
    - POLICY_UPKEEP_INTERVAL_SECONDS: UpkeepWorker polling interval (default: 60)

Invalid values fall back to the default with a warning; validate() fails
closed with POL-070.

============================================================================
"""

from decimal import Decimal, InvalidOperation
from typing import Optional, List
from dataclasses import dataclass, field
import logging
import os

from dotenv import load_dotenv

from parametric_policy.errors import PolicyConfigurationError, PolicyErrorCode

load_dotenv()

logger = logging.getLogger(__name__)


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_PAYMENT_TOLERANCE = Decimal("0.0001")
DEFAULT_ORACLE_TIMEOUT_SECONDS = 10.0
DEFAULT_UPKEEP_INTERVAL_SECONDS = 60


@dataclass
class EngineSettings:
    """
    Runtime settings shared by every policy instance in the process.
    """

    payment_tolerance: Decimal = field(default_factory=lambda: DEFAULT_PAYMENT_TOLERANCE)
    oracle_url: Optional[str] = None
    oracle_timeout_seconds: float = DEFAULT_ORACLE_TIMEOUT_SECONDS
    oracle_max_staleness_seconds: Optional[int] = None
    upkeep_interval_seconds: int = DEFAULT_UPKEEP_INTERVAL_SECONDS

    def validate(self) -> None:
        """
        Raises:
            PolicyConfigurationError: If any setting is out of range
        """
        errors: List[str] = []

        if self.payment_tolerance < Decimal("0"):
            errors.append(
                f"POLICY_PAYMENT_TOLERANCE must be non-negative, got: {self.payment_tolerance}"
            )

        if self.oracle_timeout_seconds <= 0:
            errors.append(
                f"POLICY_ORACLE_TIMEOUT_SECONDS must be positive, got: {self.oracle_timeout_seconds}"
            )

        if self.oracle_max_staleness_seconds is not None and self.oracle_max_staleness_seconds <= 0:
            errors.append(
                f"POLICY_ORACLE_MAX_STALENESS_SECONDS must be positive, got: "
                f"{self.oracle_max_staleness_seconds}"
            )

        if self.upkeep_interval_seconds <= 0:
            errors.append(
                f"POLICY_UPKEEP_INTERVAL_SECONDS must be positive, got: {self.upkeep_interval_seconds}"
            )

        if errors:
            error_msg = "Engine settings validation failed: " + "; ".join(errors)
            logger.error(f"[{PolicyErrorCode.CONFIG_INVALID}] {error_msg}")
            raise PolicyConfigurationError(error_msg)

        logger.info(
            f"[POLICY-CONFIG] Settings validated | "
            f"payment_tolerance={self.payment_tolerance} | "
            f"oracle_url_set={self.oracle_url is not None} | "
            f"oracle_max_staleness_seconds={self.oracle_max_staleness_seconds} | "
            f"upkeep_interval_seconds={self.upkeep_interval_seconds}"
        )

    @classmethod
    def from_environment(cls, validate: bool = True) -> "EngineSettings":
        """
        Load settings from environment variables.

        Args:
            validate: Whether to validate after loading (default: True)

        Raises:
            PolicyConfigurationError: If validation is requested and fails
        """
        tolerance_str = os.environ.get("POLICY_PAYMENT_TOLERANCE", str(DEFAULT_PAYMENT_TOLERANCE))
        try:
            payment_tolerance = Decimal(tolerance_str.strip())
            if not payment_tolerance.is_finite():
                raise InvalidOperation(tolerance_str)
        except InvalidOperation:
            logger.warning(
                f"[POLICY-CONFIG] Invalid POLICY_PAYMENT_TOLERANCE value: {tolerance_str}, "
                f"using default: {DEFAULT_PAYMENT_TOLERANCE}"
            )
            payment_tolerance = DEFAULT_PAYMENT_TOLERANCE

        oracle_url = os.environ.get("POLICY_ORACLE_URL", "").strip() or None

        timeout_str = os.environ.get(
            "POLICY_ORACLE_TIMEOUT_SECONDS", str(DEFAULT_ORACLE_TIMEOUT_SECONDS)
        )
        try:
            oracle_timeout_seconds = float(timeout_str.strip())
        except ValueError:
            logger.warning(
                f"[POLICY-CONFIG] Invalid POLICY_ORACLE_TIMEOUT_SECONDS value: {timeout_str}, "
                f"using default: {DEFAULT_ORACLE_TIMEOUT_SECONDS}"
            )
            oracle_timeout_seconds = DEFAULT_ORACLE_TIMEOUT_SECONDS

        staleness_str = os.environ.get("POLICY_ORACLE_MAX_STALENESS_SECONDS", "").strip()
        oracle_max_staleness_seconds: Optional[int] = None
        if staleness_str:
            try:
                oracle_max_staleness_seconds = int(staleness_str)
            except ValueError:
                logger.warning(
                    f"[POLICY-CONFIG] Invalid POLICY_ORACLE_MAX_STALENESS_SECONDS value: "
                    f"{staleness_str}, staleness check disabled"
                )

        interval_str = os.environ.get(
            "POLICY_UPKEEP_INTERVAL_SECONDS", str(DEFAULT_UPKEEP_INTERVAL_SECONDS)
        )
        try:
            upkeep_interval_seconds = int(interval_str.strip())
        except ValueError:
            logger.warning(
                f"[POLICY-CONFIG] Invalid POLICY_UPKEEP_INTERVAL_SECONDS value: {interval_str}, "
                f"using default: {DEFAULT_UPKEEP_INTERVAL_SECONDS}"
            )
            upkeep_interval_seconds = DEFAULT_UPKEEP_INTERVAL_SECONDS

        settings = cls(
            payment_tolerance=payment_tolerance,
            oracle_url=oracle_url,
            oracle_timeout_seconds=oracle_timeout_seconds,
            oracle_max_staleness_seconds=oracle_max_staleness_seconds,
            upkeep_interval_seconds=upkeep_interval_seconds,
        )

        if validate:
            settings.validate()

        return settings

    def to_dict(self) -> dict:
        return {
            "payment_tolerance": str(self.payment_tolerance),
            "oracle_url": self.oracle_url,
            "oracle_timeout_seconds": self.oracle_timeout_seconds,
            "oracle_max_staleness_seconds": self.oracle_max_staleness_seconds,
            "upkeep_interval_seconds": self.upkeep_interval_seconds,
        }


# =============================================================================
# Module-Level Settings Instance
# =============================================================================

_settings_instance: Optional[EngineSettings] = None


def get_engine_settings(validate: bool = True) -> EngineSettings:
    """Load settings from the environment on first access."""
    global _settings_instance

    if _settings_instance is None:
        _settings_instance = EngineSettings.from_environment(validate=validate)

    return _settings_instance


def reset_engine_settings() -> None:
    """Clear the cached settings (tests)."""
    global _settings_instance
    _settings_instance = None
    logger.debug("[POLICY-CONFIG] Settings instance reset")


__all__ = [
    "EngineSettings",
    "DEFAULT_PAYMENT_TOLERANCE",
    "DEFAULT_ORACLE_TIMEOUT_SECONDS",
    "DEFAULT_UPKEEP_INTERVAL_SECONDS",
    "get_engine_settings",
    "reset_engine_settings",
]
