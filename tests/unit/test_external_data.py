"""
Unit Tests for ExternalDataRequester
"""

import pytest

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from parametric_policy.errors import (
    OnlyOracleAllowed,
    RequestAlreadyFulfilled,
    UnknownRequest,
)
from parametric_policy.external_data import ExternalDataRequest, ExternalDataRequester


ORACLE = "0xoracle"
RAINFALL_URL = "https://weather.example/api/rainfall?station=NBO"


def request(requester: ExternalDataRequester) -> str:
    return requester.request_external_data(
        RAINFALL_URL, "data.rainfall_mm", "job-7d", ORACLE, now=100
    )


class TestRequest:

    def test_request_recorded_as_pending(self) -> None:
        requester = ExternalDataRequester()

        request_id = request(requester)

        pending = requester.pending()
        assert [r.request_id for r in pending] == [request_id]
        assert pending[0].url == RAINFALL_URL
        assert pending[0].path == "data.rainfall_mm"
        assert pending[0].job_id == "job-7d"
        assert pending[0].requested_at == 100

    def test_request_ids_unique(self) -> None:
        requester = ExternalDataRequester()

        assert request(requester) != request(requester)

    def test_dispatch_called(self) -> None:
        dispatched = []
        requester = ExternalDataRequester(dispatch=dispatched.append)

        request_id = request(requester)

        assert len(dispatched) == 1
        assert dispatched[0].request_id == request_id

    def test_failed_dispatch_not_recorded(self) -> None:
        def dispatch(req: ExternalDataRequest) -> None:
            raise ConnectionError("oracle node down")

        requester = ExternalDataRequester(dispatch=dispatch)

        with pytest.raises(ConnectionError):
            request(requester)

        assert requester.pending() == []


class TestFulfill:

    def test_fulfill_by_oracle(self) -> None:
        requester = ExternalDataRequester()
        request_id = request(requester)

        fulfilled = requester.fulfill(request_id, 182, caller=ORACLE, now=200)

        assert fulfilled.fulfilled is True
        assert fulfilled.value == 182
        assert fulfilled.fulfilled_at == 200
        assert requester.pending() == []
        assert requester.get(request_id).to_dict()["value"] == 182

    def test_wrong_caller_rejected(self) -> None:
        requester = ExternalDataRequester()
        request_id = request(requester)

        with pytest.raises(OnlyOracleAllowed):
            requester.fulfill(request_id, 182, caller="0xmallory")

        assert requester.get(request_id).fulfilled is False

    def test_unknown_request(self) -> None:
        with pytest.raises(UnknownRequest):
            ExternalDataRequester().fulfill("missing", 1, caller=ORACLE)

    def test_fulfilled_exactly_once(self) -> None:
        requester = ExternalDataRequester()
        request_id = request(requester)
        requester.fulfill(request_id, 182, caller=ORACLE)

        with pytest.raises(RequestAlreadyFulfilled):
            requester.fulfill(request_id, 999, caller=ORACLE)

        assert requester.get(request_id).value == 182

    def test_on_fulfilled_hook(self) -> None:
        class RainfallRequester(ExternalDataRequester):
            def __init__(self):
                super().__init__()
                self.readings = []

            def on_fulfilled(self, req, value):
                self.readings.append((req.job_id, value))

        requester = RainfallRequester()
        request_id = request(requester)

        requester.fulfill(request_id, 182, caller=ORACLE)

        assert requester.readings == [("job-7d", 182)]

    def test_get_unknown_returns_none(self) -> None:
        assert ExternalDataRequester().get("missing") is None
