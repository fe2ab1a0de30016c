"""
============================================================================
Parametric Policy - External Data Requests
============================================================================

One-shot request/fulfillment hook for data delivered by an external oracle
network (e.g. a weather index for a parametric trigger).

REQUEST LIFECYCLE:
    request_external_data(url, path, job_id, oracle_address) -> request_id
    fulfill(request_id, value, caller)   # exactly once, by oracle_address

What the value means is left to subclasses: override on_fulfilled().
The hook is independent of the policy state machine.

ERROR CODES:
    - POL-002: Fulfillment from an address other than the request's oracle
    - POL-060: Unknown request id
    - POL-061: Request already fulfilled

============================================================================
"""

from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass
import logging
import threading
import uuid

from parametric_policy.errors import (
    OnlyOracleAllowed,
    PolicyErrorCode,
    RequestAlreadyFulfilled,
    UnknownRequest,
)

logger = logging.getLogger(__name__)


@dataclass
class ExternalDataRequest:
    request_id: str
    url: str
    path: str
    job_id: str
    oracle_address: str
    requested_at: Optional[int] = None
    fulfilled: bool = False
    value: Any = None
    fulfilled_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "url": self.url,
            "path": self.path,
            "job_id": self.job_id,
            "oracle_address": self.oracle_address,
            "requested_at": self.requested_at,
            "fulfilled": self.fulfilled,
            "value": self.value,
            "fulfilled_at": self.fulfilled_at,
        }


RequestDispatcher = Callable[[ExternalDataRequest], None]


class ExternalDataRequester:
    """
    Tracks outstanding external data requests and correlates fulfillments.

    Args:
        dispatch: Optional callable handing a new request to the oracle
            network client. If it raises, the request is not recorded.
    """

    def __init__(self, dispatch: Optional[RequestDispatcher] = None) -> None:
        self._dispatch = dispatch
        self._requests: Dict[str, ExternalDataRequest] = {}
        self._lock = threading.Lock()

    def request_external_data(
        self,
        url: str,
        path: str,
        job_id: str,
        oracle_address: str,
        now: Optional[int] = None
    ) -> str:
        """Register a request and return its id."""
        request = ExternalDataRequest(
            request_id=uuid.uuid4().hex,
            url=url,
            path=path,
            job_id=job_id,
            oracle_address=oracle_address,
            requested_at=now,
        )

        if self._dispatch is not None:
            self._dispatch(request)

        with self._lock:
            self._requests[request.request_id] = request

        logger.info(
            f"[EXTERNAL-DATA] Requested | request_id={request.request_id} | "
            f"url={url} | path={path} | job_id={job_id} | oracle={oracle_address}"
        )
        return request.request_id

    def fulfill(
        self,
        request_id: str,
        value: Any,
        caller: str,
        now: Optional[int] = None
    ) -> ExternalDataRequest:
        """
        Deliver the value for a request.

        Raises:
            UnknownRequest: No such request id
            OnlyOracleAllowed: caller is not the request's oracle
            RequestAlreadyFulfilled: Already fulfilled
        """
        with self._lock:
            request = self._requests.get(request_id)

            if request is None:
                logger.error(
                    f"[{PolicyErrorCode.UNKNOWN_REQUEST}] Unknown request | request_id={request_id}"
                )
                raise UnknownRequest(f"Unknown request {request_id}")

            if caller != request.oracle_address:
                logger.error(
                    f"[{PolicyErrorCode.ONLY_ORACLE_ALLOWED}] Fulfillment from wrong address | "
                    f"request_id={request_id} | caller={caller} | "
                    f"oracle={request.oracle_address}"
                )
                raise OnlyOracleAllowed(f"{caller} may not fulfill {request_id}")

            if request.fulfilled:
                logger.error(
                    f"[{PolicyErrorCode.REQUEST_ALREADY_FULFILLED}] Duplicate fulfillment | "
                    f"request_id={request_id}"
                )
                raise RequestAlreadyFulfilled(f"Request {request_id} already fulfilled")

            request.fulfilled = True
            request.value = value
            request.fulfilled_at = now

        logger.info(f"[EXTERNAL-DATA] Fulfilled | request_id={request_id} | value={value!r}")
        self.on_fulfilled(request, value)
        return request

    def on_fulfilled(self, request: ExternalDataRequest, value: Any) -> None:
        """Extension point for subclasses. No-op by default."""

    def get(self, request_id: str) -> Optional[ExternalDataRequest]:
        with self._lock:
            return self._requests.get(request_id)

    def pending(self) -> List[ExternalDataRequest]:
        with self._lock:
            return [r for r in self._requests.values() if not r.fulfilled]


__all__ = [
    "ExternalDataRequest",
    "ExternalDataRequester",
    "RequestDispatcher",
]
