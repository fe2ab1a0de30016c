"""
============================================================================
Parametric Policy - Event Log
============================================================================

Append-only, hash-chained log of policy events.

EVENT TYPES:
    - PolicyFunded
    - PolicyRevived
    - TerminatePolicy
    - PolicyClaimed (claimed: bool)
    - PolicyMatured
    - PolicyWithdraw (amount)

Each event carries the policy instance address, a timestamp, a sequence
number and a payload. row_hash is SHA-256 over the canonical JSON of those
fields plus the previous event's hash, so any rewrite of history breaks
verify_chain().

============================================================================
"""

from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field, replace
from enum import Enum
import hashlib
import json
import logging

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64


class PolicyEventType(Enum):
    POLICY_FUNDED = "PolicyFunded"
    POLICY_REVIVED = "PolicyRevived"
    TERMINATE_POLICY = "TerminatePolicy"
    POLICY_CLAIMED = "PolicyClaimed"
    POLICY_MATURED = "PolicyMatured"
    POLICY_WITHDRAW = "PolicyWithdraw"


class PolicyJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for event payloads.

    Handles:
    - Decimal -> str (preserves precision)
    - Enum -> value
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


@dataclass(frozen=True)
class PolicyEvent:
    """One immutable entry in the event log."""
    sequence: int
    event_type: PolicyEventType
    policy_address: str
    timestamp: int
    payload: Dict[str, Any] = field(default_factory=dict)
    previous_hash: str = GENESIS_HASH
    row_hash: str = ""

    def hashable_fields(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "event_type": self.event_type.value,
            "policy_address": self.policy_address,
            "timestamp": self.timestamp,
            "payload": self.payload,
            "previous_hash": self.previous_hash,
        }

    def compute_hash(self) -> str:
        json_str = json.dumps(
            self.hashable_fields(),
            sort_keys=True,
            separators=(",", ":"),
            cls=PolicyJSONEncoder,
        )
        return hashlib.sha256(json_str.encode("utf-8")).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        data = self.hashable_fields()
        data["payload"] = json.loads(json.dumps(self.payload, cls=PolicyJSONEncoder))
        data["row_hash"] = self.row_hash
        return data


EventSubscriber = Callable[[PolicyEvent], None]


class EventLog:
    """
    Append-only event log for one policy instance.

    Subscribers are notified after each append. A failing subscriber is
    logged and skipped; it never rolls back the event.
    """

    def __init__(self, policy_address: str) -> None:
        self.policy_address = policy_address
        self._events: List[PolicyEvent] = []
        self._subscribers: List[EventSubscriber] = []

    def append(
        self,
        event_type: PolicyEventType,
        timestamp: int,
        payload: Optional[Dict[str, Any]] = None
    ) -> PolicyEvent:
        previous_hash = self._events[-1].row_hash if self._events else GENESIS_HASH
        draft = PolicyEvent(
            sequence=len(self._events),
            event_type=event_type,
            policy_address=self.policy_address,
            timestamp=timestamp,
            payload=dict(payload or {}),
            previous_hash=previous_hash,
        )
        event = replace(draft, row_hash=draft.compute_hash())
        self._events.append(event)

        logger.info(
            f"[POLICY-EVENT] {event_type.value} | "
            f"policy={self.policy_address} | seq={event.sequence} | "
            f"timestamp={timestamp} | payload={json.dumps(event.payload, cls=PolicyJSONEncoder)}"
        )

        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception as e:
                logger.error(
                    f"[POLICY-EVENT] Subscriber failed | "
                    f"event={event_type.value} | seq={event.sequence} | error={e!r}"
                )

        return event

    def subscribe(self, callback: EventSubscriber) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: EventSubscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def events(self, event_type: Optional[PolicyEventType] = None) -> List[PolicyEvent]:
        """Snapshot of the log, optionally filtered by type."""
        if event_type is None:
            return list(self._events)
        return [e for e in self._events if e.event_type == event_type]

    def last(self) -> Optional[PolicyEvent]:
        return self._events[-1] if self._events else None

    def verify_chain(self) -> bool:
        """Recompute every hash and check the links between events."""
        previous_hash = GENESIS_HASH
        for index, event in enumerate(self._events):
            if event.sequence != index or event.previous_hash != previous_hash:
                logger.error(
                    f"[POLICY-EVENT] Chain link broken | seq={event.sequence} | index={index}"
                )
                return False
            if event.compute_hash() != event.row_hash:
                logger.error(
                    f"[POLICY-EVENT] Row hash mismatch | seq={event.sequence} | "
                    f"stored={event.row_hash}"
                )
                return False
            previous_hash = event.row_hash
        return True

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(list(self._events))


__all__ = [
    "GENESIS_HASH",
    "PolicyEventType",
    "PolicyEvent",
    "PolicyJSONEncoder",
    "EventLog",
]
