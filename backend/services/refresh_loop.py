import logging
import threading
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)

NOTIFICATION_CHECK_INTERVAL = 60.0  # seconds


class RefreshResult(str, Enum):
    OK = "ok"
    ALREADY_IN_FLIGHT = "already_in_flight"


class RefreshLoop:
    """Drives refresh cycles from a timer and from manual requests.

    At most one cycle runs at a time. A trigger that arrives while a cycle is
    in flight is dropped, not queued. The in-flight lock is a plain Lock, so
    it is not re-entrant and may be released by the worker thread that ran
    the cycle.
    """

    def __init__(
        self,
        cycle: Callable[[threading.Event], None],
        interval: Callable[[], float],
        tick: Callable[[], None] | None = None,
        check_interval: float = NOTIFICATION_CHECK_INTERVAL,
    ):
        self._cycle = cycle
        self._interval = interval
        self._tick = tick
        self.check_interval = check_interval
        self._in_flight = threading.Lock()
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self._worker: threading.Thread | None = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def _run_cycle(self):
        try:
            self._cycle(self._stop)
        except Exception:
            logger.exception("Refresh cycle failed")

    def _run_and_release(self):
        try:
            self._run_cycle()
        finally:
            self._in_flight.release()

    def run_once(self) -> RefreshResult:
        """Run one cycle on the calling thread unless one is already running."""
        if not self._in_flight.acquire(blocking=False):
            logger.debug("Refresh already in flight, dropping trigger")
            return RefreshResult.ALREADY_IN_FLIGHT
        self._run_and_release()
        return RefreshResult.OK

    def trigger(self) -> RefreshResult:
        """Start a cycle in the background and return immediately."""
        if not self._in_flight.acquire(blocking=False):
            logger.debug("Refresh already in flight, dropping manual trigger")
            return RefreshResult.ALREADY_IN_FLIGHT
        self._worker = threading.Thread(target=self._run_and_release, name="refresh-now", daemon=True)
        self._worker.start()
        return RefreshResult.OK

    # ---- Background threads ----

    def _timer_loop(self):
        self.run_once()
        while not self._stop.wait(self._interval()):
            self.run_once()

    def _check_loop(self):
        while not self._stop.wait(self.check_interval):
            try:
                self._tick()
            except Exception:
                logger.exception("Notification check failed")

    def start(self):
        if self._threads:
            return
        self._stop.clear()
        self._threads = [threading.Thread(target=self._timer_loop, name="refresh-timer", daemon=True)]
        if self._tick is not None:
            self._threads.append(
                threading.Thread(target=self._check_loop, name="notification-check", daemon=True)
            )
        for thread in self._threads:
            thread.start()

    def stop(self, timeout: float = 5.0):
        """Stop the timer and cancel any in-flight fetch."""
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
        if self._worker is not None:
            self._worker.join(timeout=timeout)
        self._threads = []
        self._worker = None
