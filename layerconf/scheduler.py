"""Periodic reload scheduler.

One daemon thread drives every reload tick of an engine. Ticks run one at a
time; a tick that overruns the interval causes the missed ticks to be
skipped rather than queued.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class ReloadScheduler:
    """Fixed-interval timer with an explicit start/stop lifecycle."""

    def __init__(
        self,
        interval: float,
        tick: Callable[[], Any],
        name: str = "layerconf-reload",
    ):
        """Initialize the scheduler.

        Args:
            interval: Seconds between scheduled ticks
            tick: Callable invoked on every tick
            name: Name of the scheduler thread
        """
        if interval <= 0:
            raise ValueError(f"Reload interval must be positive, got {interval}")
        self.interval = interval
        self.name = name
        self._tick = tick
        self._wake = threading.Event()
        self._stop_requested = False
        self._thread: Optional[threading.Thread] = None
        self._tick_count = 0
        self._skipped_count = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def skipped_count(self) -> int:
        return self._skipped_count

    def start(self) -> None:
        """Arm the timer. The first tick fires one interval from now."""
        if self.running:
            logger.warning("Reload scheduler is already running")
            return
        self._stop_requested = False
        self._wake.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.info(f"Started reload scheduler with a {self.interval}s interval")

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Disarm the timer and wait for the thread to exit.

        Args:
            timeout: Seconds to wait for an in-flight tick, None to wait forever

        Returns:
            True if the scheduler thread has exited
        """
        self._stop_requested = True
        self._wake.set()
        thread = self._thread
        if thread is None:
            return True
        if thread is not threading.current_thread():
            thread.join(timeout)
        stopped = not thread.is_alive()
        if stopped:
            self._thread = None
            logger.info("Stopped reload scheduler")
        return stopped

    def trigger(self) -> None:
        """Request an out-of-cycle tick as soon as the current one finishes."""
        if self.running and not self._stop_requested:
            self._wake.set()

    def _run(self) -> None:
        deadline = time.monotonic() + self.interval
        while True:
            timeout = deadline - time.monotonic()
            if timeout > 0:
                self._wake.wait(timeout)
            if self._stop_requested:
                break
            self._wake.clear()

            self._run_tick()

            now = time.monotonic()
            if now >= deadline:
                missed = int((now - deadline) // self.interval)
                if missed:
                    self._skipped_count += missed
                    logger.debug(
                        f"Tick overran the interval, skipping {missed} tick(s)"
                    )
                deadline += (missed + 1) * self.interval

    def _run_tick(self) -> None:
        self._tick_count += 1
        try:
            self._tick()
        except Exception as e:
            logger.error(f"Reload tick failed: {e}")
