"""
============================================================================
Parametric Policy - Price Oracle Adapter
============================================================================

Quotes the policy premium in a reference currency using the latest price
from an injected PriceFeed.

QUOTE CALCULATION:
    quote = premium_to_be_paid * price        (ROUND_HALF_EVEN, 8 places)
    price = answer / 10**decimals

No caching: every quote queries the feed.

FAILURE MODES (all raise OracleUnavailable, POL-050):
    - feed raises (unreachable, malformed response)
    - answer <= 0
    - round older than max_staleness_seconds, when a limit and `now` are given

The staleness check is opt-in. With no limit configured any round is used,
however old.

============================================================================
"""

from decimal import Decimal
from typing import Optional
import logging

from parametric_policy.decimal_gateway import DecimalGateway
from parametric_policy.errors import OracleUnavailable, PolicyErrorCode
from parametric_policy.oracle.price_feed import PriceFeed, PriceRound

logger = logging.getLogger(__name__)


class PriceOracle:
    """
    Adapter between the policy engine and a PriceFeed.

    Example Usage:
        oracle = PriceOracle(StaticPriceFeed(Decimal("2000")))
        oracle.quote_premium_in_reference_currency(Decimal("0.5"))  # Decimal('1000.00000000')
    """

    def __init__(
        self,
        feed: PriceFeed,
        max_staleness_seconds: Optional[int] = None,
        source_address: Optional[str] = None
    ) -> None:
        if max_staleness_seconds is not None and max_staleness_seconds <= 0:
            raise ValueError(
                f"max_staleness_seconds must be positive, got: {max_staleness_seconds}"
            )
        self.feed = feed
        self.max_staleness_seconds = max_staleness_seconds
        self.source_address = source_address
        self.gateway = DecimalGateway()

    def latest_round(self, now: Optional[int] = None) -> PriceRound:
        """
        Fetch and validate the latest round.

        Raises:
            OracleUnavailable: See module docstring
        """
        try:
            price_round = self.feed.latest_round()
        except Exception as e:
            logger.error(
                f"[{PolicyErrorCode.ORACLE_UNAVAILABLE}] Price feed query failed | "
                f"source={self.source_address} | error={e!r}"
            )
            raise OracleUnavailable(f"Price feed query failed: {e}") from e

        if price_round.answer <= 0:
            logger.error(
                f"[{PolicyErrorCode.ORACLE_UNAVAILABLE}] Invalid price answer | "
                f"source={self.source_address} | answer={price_round.answer} | "
                f"round_id={price_round.round_id}"
            )
            raise OracleUnavailable(f"Invalid price answer {price_round.answer}")

        if self.max_staleness_seconds is not None and now is not None:
            age = now - price_round.updated_at
            if age > self.max_staleness_seconds:
                logger.error(
                    f"[{PolicyErrorCode.ORACLE_UNAVAILABLE}] Stale price round | "
                    f"source={self.source_address} | age_seconds={age} | "
                    f"max_staleness_seconds={self.max_staleness_seconds}"
                )
                raise OracleUnavailable(
                    f"Price round is {age}s old (limit {self.max_staleness_seconds}s)"
                )

        return price_round

    def latest_price(self, now: Optional[int] = None) -> Decimal:
        """Latest price as a Decimal with 8 places."""
        return self.latest_round(now).price

    def quote_premium_in_reference_currency(
        self,
        premium: Decimal,
        now: Optional[int] = None
    ) -> Decimal:
        """
        Multiply the premium by the latest price.

        Args:
            premium: Premium amount in policy units
            now: Current timestamp, used only for the staleness check

        Returns:
            Quote in the reference currency, 8 decimal places
        """
        price = self.latest_price(now)
        quote = self.gateway.multiply(
            self.gateway.to_amount(premium, "premium"),
            price,
            DecimalGateway.PRICE_PRECISION,
        )

        logger.debug(
            f"[ORACLE] Premium quoted | premium={premium} | price={price} | quote={quote}"
        )
        return quote


# =============================================================================
# Factory Function
# =============================================================================

def create_price_oracle_from_settings(
    settings=None,
    source_address: Optional[str] = None
) -> Optional[PriceOracle]:
    """
    Build a PriceOracle over an HttpPriceFeed from engine settings.

    Returns None when POLICY_ORACLE_URL is not set.
    """
    from parametric_policy.config import get_engine_settings
    from parametric_policy.oracle.price_feed import HttpPriceFeed

    if settings is None:
        settings = get_engine_settings(validate=False)

    if not settings.oracle_url:
        logger.info("[ORACLE] No POLICY_ORACLE_URL configured, price oracle disabled")
        return None

    feed = HttpPriceFeed(settings.oracle_url, timeout=settings.oracle_timeout_seconds)
    return PriceOracle(
        feed,
        max_staleness_seconds=settings.oracle_max_staleness_seconds,
        source_address=source_address or settings.oracle_url,
    )


__all__ = ["PriceOracle", "create_price_oracle_from_settings"]
