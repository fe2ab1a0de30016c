# ============================================================================
# Parametric Policy
# Oracle Module - Reference-Currency Pricing
# ============================================================================
#
# Components:
#   - PriceFeed: latest-round interface
#   - StaticPriceFeed: fixed-answer feed
#   - HttpPriceFeed: requests-based JSON feed with retry/backoff
#   - PriceOracle: premium quote adapter
#
# ============================================================================

from parametric_policy.oracle.price_feed import (
    PriceRound,
    PriceFeed,
    StaticPriceFeed,
    HttpPriceFeed,
    ExponentialBackoff,
)
from parametric_policy.oracle.price_oracle import PriceOracle, create_price_oracle_from_settings

__all__ = [
    'PriceRound',
    'PriceFeed',
    'StaticPriceFeed',
    'HttpPriceFeed',
    'ExponentialBackoff',
    'PriceOracle',
    'create_price_oracle_from_settings',
]
