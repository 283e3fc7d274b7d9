"""Fixed-interval background runner."""
import threading
from typing import Any, Callable, Optional

from common.logging import LoggingManager

logger = LoggingManager.get_logger('app.scheduler')


class PeriodicScheduler:
    """Calls `func` every `interval_seconds` on a daemon thread.

    With run_immediately the first call happens as soon as start() is called.
    A call that raises is logged and the schedule carries on. run_now() calls
    `func` on the caller's thread and lets errors through.
    """

    def __init__(self, name: str, func: Callable[[], Any], interval_seconds: float, run_immediately: bool = True):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.func = func
        self.interval_seconds = interval_seconds
        self.run_immediately = run_immediately
        self.runs = 0
        self.failures = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            logger.warning(f"Scheduler '{self.name}' already running")
            return
        logger.info(f"Starting scheduler '{self.name}' (interval: {self.interval_seconds:.0f}s)")
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=f"scheduler-{self.name}", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning(f"Scheduler '{self.name}' did not stop within {timeout}s")
            self._thread = None
        logger.info(f"Stopped scheduler '{self.name}'")

    def run_now(self) -> Any:
        return self.func()

    def _tick(self) -> None:
        self.runs += 1
        try:
            self.func()
        except Exception as e:
            self.failures += 1
            logger.error(f"Scheduled run of '{self.name}' failed: {e}", exc_info=True)

    def _loop(self) -> None:
        if self.run_immediately:
            self._tick()
        while not self._stop_event.wait(self.interval_seconds):
            self._tick()
