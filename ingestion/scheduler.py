"""
Quarter-hour job runner.

A single daemon thread sleeps until the next :00/:15/:30/:45 boundary and
runs the job.  A run that is still in progress when the next boundary
arrives causes that tick to be skipped; job failures are logged and never
stop the loop.
"""
import logging
import threading
from datetime import datetime

from ingestion.auto_submit import next_quarter

logger = logging.getLogger(__name__)


def seconds_until_next_quarter(now: datetime) -> float:
    return (next_quarter(now) - now).total_seconds()


class QuarterHourScheduler:
    def __init__(self, job, clock=datetime.now, name: str = "auto-submit") -> None:
        self._job = job
        self._clock = clock
        self._name = name
        self._stop_event = threading.Event()
        self._running = threading.Lock()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=self._name, daemon=True)
        self._thread.start()
        logger.info(
            "Scheduler %s will start in %.0fs",
            self._name, seconds_until_next_quarter(self._clock()),
        )

    def stop(self, timeout: float | None = 5) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _loop(self) -> None:
        target = next_quarter(self._clock())
        while not self._stop_event.wait(max(0.0, (target - self._clock()).total_seconds())):
            # Each tick on its own thread so a slow job cannot delay the clock.
            threading.Thread(target=self.run_once, name=f"{self._name}-tick", daemon=True).start()
            # An early wake-up must not fire the same boundary twice.
            target = next_quarter(max(self._clock(), target))

    def run_once(self) -> bool:
        """Run the job unless a previous run is still going. Returns whether it ran."""
        if not self._running.acquire(blocking=False):
            logger.warning("Scheduler %s: previous run still in progress, skipping tick", self._name)
            return False
        try:
            self._job()
        except Exception:
            logger.exception("Scheduler %s: job failed", self._name)
        finally:
            self._running.release()
        return True
