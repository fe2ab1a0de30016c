# ============================================================================
# Parametric Policy
# Price Feed - Latest-Round Price Sources
# ============================================================================
#
# Purpose: Fetch the latest reference-currency exchange rate
#
# MANDATE:
#   - All numeric values converted via DecimalGateway
#   - Exponential backoff on HTTP 429 / 5xx / connection errors
#   - Feed answers are integers with an explicit decimals count
#
# Error Codes:
#   - POL-051: Price feed request failed
#
# ============================================================================

import time
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

import requests
from requests.exceptions import Timeout, ConnectionError as RequestsConnectionError

from parametric_policy.decimal_gateway import DecimalGateway
from parametric_policy.errors import PriceFeedError, PolicyErrorCode

logger = logging.getLogger(__name__)

DEFAULT_FEED_DECIMALS = 8


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True)
class PriceRound:
    """
    One price-feed round.

    answer is an integer scaled by 10**decimals; updated_at is a unix
    timestamp in seconds.
    """
    answer: int
    decimals: int
    updated_at: int
    round_id: int = 0

    @property
    def price(self) -> Decimal:
        return DecimalGateway().scale_feed_answer(self.answer, self.decimals)


# ============================================================================
# Feed Interface
# ============================================================================

class PriceFeed(ABC):
    """Source of the latest reference-currency price."""

    @abstractmethod
    def latest_round(self) -> PriceRound:
        """
        Return the most recent price round.

        Raises:
            PriceFeedError: If the source cannot be queried
        """


class StaticPriceFeed(PriceFeed):
    """Fixed-answer feed for local runs and tests."""

    def __init__(
        self,
        price: Decimal,
        decimals: int = DEFAULT_FEED_DECIMALS,
        updated_at: int = 0,
        round_id: int = 1
    ) -> None:
        self.decimals = decimals
        self.updated_at = updated_at
        self.round_id = round_id
        self.set_price(price)

    def set_price(self, price: Decimal, updated_at: Optional[int] = None) -> None:
        scaled = Decimal(str(price)).scaleb(self.decimals)
        self.answer = int(scaled)
        if updated_at is not None:
            self.updated_at = updated_at
            self.round_id += 1

    def latest_round(self) -> PriceRound:
        return PriceRound(
            answer=self.answer,
            decimals=self.decimals,
            updated_at=self.updated_at,
            round_id=self.round_id,
        )


# ============================================================================
# Exponential Backoff
# ============================================================================

class ExponentialBackoff:
    """
    Backoff delays for retried price-feed requests.

    No jitter: a single policy instance has no thundering herd to break up.
    """

    def __init__(
        self,
        base_delay: float = 0.5,
        multiplier: float = 2.0,
        max_delay: float = 10.0
    ):
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self._attempt = 0

    def get_delay(self) -> float:
        """Get next backoff delay and increment attempt counter."""
        delay = min(self.base_delay * (self.multiplier ** self._attempt), self.max_delay)
        self._attempt += 1
        return delay

    def reset(self) -> None:
        self._attempt = 0


# ============================================================================
# HTTP Price Feed
# ============================================================================

class HttpPriceFeed(PriceFeed):
    """
    Price feed backed by a JSON HTTP endpoint.

    Accepted response shapes:
        {"answer": 183412345678, "decimals": 8, "updatedAt": 1700000000, "roundId": 42}
        {"price": "1834.12345678", "updatedAt": 1700000000}

    Example Usage:
        with HttpPriceFeed("https://feeds.example/eth-usd") as feed:
            price_round = feed.latest_round()
    """

    DEFAULT_TIMEOUT = 10.0
    MAX_RETRIES = 3

    def __init__(
        self,
        url: str,
        decimals: int = DEFAULT_FEED_DECIMALS,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        session: Optional[requests.Session] = None,
        sleep=time.sleep
    ):
        """
        Args:
            url: Endpoint returning the latest round as JSON
            decimals: Decimals used when the endpoint returns a plain price
            timeout: HTTP request timeout in seconds
            max_retries: Attempts before giving up
            session: Optional pre-built requests.Session
            sleep: Sleep function used between retries
        """
        self.url = url
        self.decimals = decimals
        self.timeout = timeout
        self.max_retries = max_retries
        self.gateway = DecimalGateway()
        self.backoff = ExponentialBackoff()
        self._sleep = sleep
        self._session = session or requests.Session()

        logger.info(f"[ORACLE] HTTP price feed initialized | url={url}")

    def latest_round(self) -> PriceRound:
        response = self._request_with_retry()

        try:
            data = response.json()
            return self._parse_round(data)
        except (ValueError, KeyError, TypeError) as e:
            logger.error(
                f"[{PolicyErrorCode.PRICE_FEED_ERROR}] Invalid response format | "
                f"url={self.url} | error={e!r}"
            )
            raise PriceFeedError(f"Invalid price feed response from {self.url}: {e!r}") from e

    def _parse_round(self, data: Dict[str, Any]) -> PriceRound:
        updated_at = int(data.get("updatedAt", data.get("updated_at", int(time.time()))))
        round_id = int(data.get("roundId", data.get("round_id", 0)))

        if "answer" in data:
            decimals = int(data.get("decimals", self.decimals))
            answer = int(data["answer"])
        else:
            decimals = self.decimals
            price = self.gateway.to_price(data["price"])
            answer = int(price.scaleb(decimals))

        price_round = PriceRound(
            answer=answer,
            decimals=decimals,
            updated_at=updated_at,
            round_id=round_id,
        )

        logger.debug(
            f"[ORACLE] Round fetched | url={self.url} | answer={answer} | "
            f"decimals={decimals} | updated_at={updated_at} | round_id={round_id}"
        )
        return price_round

    def _request_with_retry(self) -> requests.Response:
        """
        GET the feed URL with exponential backoff retry.

        Raises:
            PriceFeedError: After max retries exhausted or on a 4xx response
        """
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                response = self._session.get(self.url, timeout=self.timeout)

                if response.status_code == 429 or response.status_code >= 500:
                    delay = self.backoff.get_delay()
                    last_error = PriceFeedError(f"HTTP {response.status_code}")
                    logger.warning(
                        f"[ORACLE] HTTP {response.status_code} | "
                        f"attempt={attempt + 1}/{self.max_retries} | backoff={delay:.1f}s"
                    )
                    if attempt < self.max_retries - 1:
                        self._sleep(delay)
                    continue

                response.raise_for_status()
                self.backoff.reset()
                return response

            except (Timeout, RequestsConnectionError) as e:
                last_error = e
                delay = self.backoff.get_delay()
                logger.warning(
                    f"[ORACLE] {type(e).__name__} | "
                    f"attempt={attempt + 1}/{self.max_retries} | backoff={delay:.1f}s"
                )
                if attempt < self.max_retries - 1:
                    self._sleep(delay)
                continue

            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else "N/A"
                logger.error(
                    f"[{PolicyErrorCode.PRICE_FEED_ERROR}] API error | "
                    f"url={self.url} | status={status}"
                )
                raise PriceFeedError(f"Price feed returned HTTP {status}") from e

        self.backoff.reset()
        logger.error(
            f"[{PolicyErrorCode.PRICE_FEED_ERROR}] Max retries exhausted | "
            f"url={self.url} | error={last_error}"
        )
        raise PriceFeedError(f"Max retries exhausted for {self.url}: {last_error}")

    def close(self) -> None:
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


__all__ = [
    "PriceRound",
    "PriceFeed",
    "StaticPriceFeed",
    "HttpPriceFeed",
    "ExponentialBackoff",
    "DEFAULT_FEED_DECIMALS",
]
