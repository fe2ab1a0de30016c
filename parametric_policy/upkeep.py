"""
============================================================================
Parametric Policy - Upkeep Worker
============================================================================

In-process stand-in for the external scheduler that drives a policy's
time-based state.

UPKEEP CYCLE:
    1. needed, reason = target.check_upkeep(now)
    2. if needed: target.perform_upkeep(now)
    3. sleep interval_seconds, repeat

The worker tolerates being run zero or several times per funding interval;
perform_upkeep re-checks due-ness itself. Errors in a cycle are logged and
the loop continues.

============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple
import logging
import threading
import time

from parametric_policy.observability.metrics import record_upkeep

logger = logging.getLogger(__name__)


class UpkeepTarget(ABC):
    """The two callbacks a scheduler needs."""

    @abstractmethod
    def check_upkeep(self, now: int) -> Tuple[bool, str]:
        """Return (needed, reason)."""

    @abstractmethod
    def perform_upkeep(self, now: int) -> bool:
        """Run one state step. Return True if the state advanced."""


def _system_clock() -> int:
    return int(time.time())


class UpkeepWorker:
    """
    Background thread polling one policy's upkeep hooks.

    Example Usage:
        worker = UpkeepWorker(policy, interval_seconds=60)
        worker.start()
        ...
        worker.stop()
    """

    def __init__(
        self,
        target: UpkeepTarget,
        interval_seconds: int = 60,
        clock: Callable[[], int] = _system_clock,
    ) -> None:
        """
        Args:
            target: Object exposing check_upkeep(now) / perform_upkeep(now)
            interval_seconds: Seconds between cycles
            clock: Returns the current timestamp in seconds
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got: {interval_seconds}")

        self._target = target
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.cycles = 0
        self.performed = 0

        logger.info(f"[UPKEEP-WORKER] Initialized | interval_seconds={interval_seconds}")

    @property
    def interval_seconds(self) -> int:
        return self._interval_seconds

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self, now: Optional[int] = None) -> bool:
        """
        Execute one check/perform cycle synchronously.

        Returns:
            True if perform_upkeep advanced the policy
        """
        if now is None:
            now = self._clock()

        self.cycles += 1
        needed, reason = self._target.check_upkeep(now)
        if not needed:
            logger.debug(f"[UPKEEP-WORKER] Not needed | now={now} | reason={reason}")
            return False

        performed = bool(self._target.perform_upkeep(now))
        if performed:
            self.performed += 1
        logger.info(
            f"[UPKEEP-WORKER] Cycle | now={now} | reason={reason} | performed={performed}"
        )
        return performed

    def start(self) -> None:
        if self.is_running:
            logger.warning("[UPKEEP-WORKER] Already running, ignoring start request")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="policy-upkeep", daemon=True
        )
        self._thread.start()
        logger.info(f"[UPKEEP-WORKER] Started | interval_seconds={self._interval_seconds}")

    def stop(self, timeout: Optional[float] = None) -> None:
        if not self.is_running:
            logger.warning("[UPKEEP-WORKER] Not running, ignoring stop request")
            return

        self._stop_event.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info("[UPKEEP-WORKER] Stopped")

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"[UPKEEP-WORKER] Error in main loop | error={e!r}")
                record_upkeep("error")

            self._stop_event.wait(self._interval_seconds)

        logger.info("[UPKEEP-WORKER] Main loop exited")


def create_upkeep_worker_from_settings(target: UpkeepTarget, settings=None) -> UpkeepWorker:
    """Create an UpkeepWorker polling at POLICY_UPKEEP_INTERVAL_SECONDS."""
    from parametric_policy.config import get_engine_settings

    if settings is None:
        settings = get_engine_settings(validate=False)
    return UpkeepWorker(target, interval_seconds=settings.upkeep_interval_seconds)


__all__ = ["UpkeepTarget", "UpkeepWorker", "create_upkeep_worker_from_settings"]
