"""
Unit Tests for the Price Oracle and Price Feeds

Tests:
- StaticPriceFeed rounds
- PriceOracle quote, invalid answers, staleness
- HttpPriceFeed parsing and retry behaviour (requests session mocked)
- ExponentialBackoff delays
"""

import pytest
from decimal import Decimal
from unittest.mock import MagicMock

import requests

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from parametric_policy.config import EngineSettings
from parametric_policy.errors import OracleUnavailable, PriceFeedError
from parametric_policy.oracle.price_feed import (
    ExponentialBackoff,
    HttpPriceFeed,
    PriceFeed,
    PriceRound,
    StaticPriceFeed,
)
from parametric_policy.oracle.price_oracle import (
    PriceOracle,
    create_price_oracle_from_settings,
)


FEED_URL = "https://feeds.example/eth-usd"


# =============================================================================
# Helpers
# =============================================================================

def make_response(status_code: int = 200, payload=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(response=response)
    return response


def make_feed(*responses) -> HttpPriceFeed:
    session = MagicMock()
    session.get.side_effect = list(responses)
    return HttpPriceFeed(FEED_URL, session=session, sleep=lambda _: None)


class BrokenFeed(PriceFeed):
    def latest_round(self) -> PriceRound:
        raise PriceFeedError("unreachable")


# =============================================================================
# Static feed / PriceRound
# =============================================================================

class TestStaticPriceFeed:

    def test_round_scaled_by_decimals(self) -> None:
        price_round = StaticPriceFeed(Decimal("1834.5"), updated_at=100).latest_round()

        assert price_round.answer == 183450000000
        assert price_round.decimals == 8
        assert price_round.price == Decimal("1834.50000000")

    def test_set_price_bumps_round(self) -> None:
        feed = StaticPriceFeed(Decimal("1"))

        feed.set_price(Decimal("2"), updated_at=50)

        price_round = feed.latest_round()
        assert price_round.price == Decimal("2")
        assert price_round.round_id == 2
        assert price_round.updated_at == 50


# =============================================================================
# PriceOracle
# =============================================================================

class TestPriceOracle:

    def test_quote(self) -> None:
        oracle = PriceOracle(StaticPriceFeed(Decimal("2000")))

        assert oracle.quote_premium_in_reference_currency(Decimal("0.5")) == Decimal("1000")

    def test_quote_rounds_half_even_to_eight_places(self) -> None:
        oracle = PriceOracle(StaticPriceFeed(Decimal("0.00000001")))

        quote = oracle.quote_premium_in_reference_currency(Decimal("0.5"))

        assert quote == Decimal("0E-8")

    def test_feed_failure_is_unavailable(self) -> None:
        with pytest.raises(OracleUnavailable) as exc_info:
            PriceOracle(BrokenFeed()).latest_price()

        assert exc_info.value.error_code == "POL-050"

    @pytest.mark.parametrize("price", [Decimal("0"), Decimal("-1")])
    def test_non_positive_answer_is_unavailable(self, price) -> None:
        with pytest.raises(OracleUnavailable):
            PriceOracle(StaticPriceFeed(price)).latest_price()

    def test_stale_round_rejected_when_limit_set(self) -> None:
        oracle = PriceOracle(
            StaticPriceFeed(Decimal("2000"), updated_at=1_000),
            max_staleness_seconds=60,
        )

        assert oracle.latest_price(now=1_060) == Decimal("2000")
        with pytest.raises(OracleUnavailable):
            oracle.latest_price(now=1_061)

    def test_staleness_unchecked_by_default(self) -> None:
        oracle = PriceOracle(StaticPriceFeed(Decimal("2000"), updated_at=0))

        assert oracle.latest_price(now=10 ** 9) == Decimal("2000")

    def test_invalid_staleness_limit(self) -> None:
        with pytest.raises(ValueError):
            PriceOracle(StaticPriceFeed(Decimal("1")), max_staleness_seconds=0)


# =============================================================================
# HttpPriceFeed
# =============================================================================

class TestHttpPriceFeed:

    def test_answer_shape(self) -> None:
        feed = make_feed(make_response(payload={
            "answer": 183412345678, "decimals": 8, "updatedAt": 1700000000, "roundId": 42,
        }))

        price_round = feed.latest_round()

        assert price_round.price == Decimal("1834.12345678")
        assert price_round.updated_at == 1700000000
        assert price_round.round_id == 42

    def test_price_shape(self) -> None:
        feed = make_feed(make_response(payload={"price": "1834.5", "updatedAt": 1700000000}))

        price_round = feed.latest_round()

        assert price_round.answer == 183450000000
        assert price_round.decimals == 8

    def test_retries_on_server_error(self) -> None:
        delays = []
        session = MagicMock()
        session.get.side_effect = [
            make_response(503),
            make_response(429),
            make_response(payload={"answer": 100000000, "decimals": 8, "updatedAt": 1}),
        ]
        feed = HttpPriceFeed(FEED_URL, session=session, sleep=delays.append)

        assert feed.latest_round().price == Decimal("1")
        assert delays == [0.5, 1.0]
        assert session.get.call_count == 3

    def test_retries_on_timeout(self) -> None:
        feed = make_feed(
            requests.exceptions.Timeout("slow"),
            make_response(payload={"answer": 100000000, "decimals": 8, "updatedAt": 1}),
        )

        assert feed.latest_round().price == Decimal("1")

    def test_max_retries_exhausted(self) -> None:
        feed = make_feed(make_response(500), make_response(502), make_response(503))

        with pytest.raises(PriceFeedError) as exc_info:
            feed.latest_round()

        assert exc_info.value.error_code == "POL-051"

    def test_no_sleep_after_final_attempt(self) -> None:
        delays = []
        session = MagicMock()
        session.get.side_effect = [
            make_response(500),
            requests.exceptions.Timeout("slow"),
            make_response(503),
        ]
        feed = HttpPriceFeed(FEED_URL, session=session, sleep=delays.append)

        with pytest.raises(PriceFeedError):
            feed.latest_round()

        assert session.get.call_count == 3
        assert delays == [0.5, 1.0]

    def test_client_error_not_retried(self) -> None:
        session = MagicMock()
        session.get.side_effect = [make_response(404)]
        feed = HttpPriceFeed(FEED_URL, session=session, sleep=lambda _: None)

        with pytest.raises(PriceFeedError) as exc_info:
            feed.latest_round()

        assert "404" in str(exc_info.value)
        assert session.get.call_count == 1

    def test_malformed_body(self) -> None:
        feed = make_feed(make_response(payload={"unexpected": True}))

        with pytest.raises(PriceFeedError):
            feed.latest_round()

    def test_oracle_wraps_feed_error(self) -> None:
        feed = make_feed(make_response(404))

        with pytest.raises(OracleUnavailable):
            PriceOracle(feed).latest_price()

    def test_context_manager_closes_session(self) -> None:
        session = MagicMock()

        with HttpPriceFeed(FEED_URL, session=session):
            pass

        session.close.assert_called_once()


class TestExponentialBackoff:

    def test_delays_double_and_cap(self) -> None:
        backoff = ExponentialBackoff(base_delay=1.0, multiplier=2.0, max_delay=5.0)

        assert [backoff.get_delay() for _ in range(4)] == [1.0, 2.0, 4.0, 5.0]

    def test_reset(self) -> None:
        backoff = ExponentialBackoff()
        backoff.get_delay()
        backoff.get_delay()

        backoff.reset()

        assert backoff.get_delay() == 0.5


# =============================================================================
# Factory
# =============================================================================

class TestCreateFromSettings:

    def test_no_url_means_no_oracle(self) -> None:
        assert create_price_oracle_from_settings(EngineSettings()) is None

    def test_url_builds_http_oracle(self) -> None:
        settings = EngineSettings(
            oracle_url=FEED_URL,
            oracle_timeout_seconds=3.0,
            oracle_max_staleness_seconds=120,
        )

        oracle = create_price_oracle_from_settings(settings, source_address="0xfeed")

        assert isinstance(oracle.feed, HttpPriceFeed)
        assert oracle.feed.timeout == 3.0
        assert oracle.max_staleness_seconds == 120
        assert oracle.source_address == "0xfeed"
