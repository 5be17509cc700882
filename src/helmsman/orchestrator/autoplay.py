"""Autoplay: a recurring synthetic turn on a timer, with a circuit breaker.

Each run owns a daemon thread and a private stop event. The thread runs a
turn immediately, then waits ``interval`` seconds on the event between
turns. Stopping only sets the event: a turn already in flight runs to
completion and no further turn starts.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field

from helmsman.exceptions import (
    AutoplayAlreadyRunningError,
    AutoplayCircuitOpenError,
    AutoplayNotRunningError,
)
from helmsman.models.config import DEFAULT_AUTOPLAY_INTERVAL, DEFAULT_AUTOPLAY_MAX_FAILURES
from helmsman.orchestrator.callbacks import AutoplayCallbacks
from helmsman.orchestrator.config import AutoplayState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AutoplayStatus:
    """Snapshot of the coordinator for display."""

    enabled: bool
    message: str
    interval: float
    consecutive_failures: int = 0


@dataclass
class _Run:
    """State private to one start()..stop cycle."""

    message: str
    stop_event: threading.Event = field(default_factory=threading.Event)
    failures: int = 0
    thread: threading.Thread | None = None


class AutoplayCoordinator:
    """Supervises recurring autoplay turns.

    Usage::

        coordinator = AutoplayCoordinator(AutoplayCallbacks(on_turn=agent.send))
        coordinator.start("Keep mining and sell when the hold is full")
        ...
        coordinator.stop()
    """

    def __init__(
        self,
        callbacks: AutoplayCallbacks,
        *,
        interval: float = DEFAULT_AUTOPLAY_INTERVAL,
        max_consecutive_failures: int = DEFAULT_AUTOPLAY_MAX_FAILURES,
    ) -> None:
        if interval < 0:
            raise ValueError("interval must be non-negative")
        if max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be at least 1")
        self._callbacks = callbacks
        self._interval = interval
        self._max_failures = max_consecutive_failures
        self._lock = threading.Lock()
        self._run: _Run | None = None
        self._threads: list[threading.Thread] = []
        self._last_message = ""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> AutoplayState:
        with self._lock:
            return AutoplayState.RUNNING if self._run is not None else AutoplayState.IDLE

    @property
    def interval(self) -> float:
        return self._interval

    def start(self, message: str) -> None:
        """Start autoplay with ``message`` as the recurring turn input.

        Raises:
            ValueError: If ``message`` is empty.
            AutoplayAlreadyRunningError: If a run is active.
        """
        if not message or not message.strip():
            raise ValueError("Autoplay message cannot be empty")

        with self._lock:
            if self._run is not None:
                raise AutoplayAlreadyRunningError()
            run = _Run(message=message)
            self._run = run
            self._last_message = message
            thread = threading.Thread(
                target=self._loop,
                args=(run,),
                name="helmsman-autoplay",
                daemon=True,
            )
            run.thread = thread
            self._threads = [t for t in self._threads if t.is_alive()]
            self._threads.append(thread)

        logger.info("Autoplay started (interval %.1fs)", self._interval)
        self._callbacks.started(message, self._interval)
        thread.start()

    def stop(self) -> None:
        """Stop autoplay. A turn already in flight is not interrupted.

        Raises:
            AutoplayNotRunningError: If autoplay is not running.
        """
        with self._lock:
            run = self._run
            if run is None:
                raise AutoplayNotRunningError()
            self._run = None
            run.stop_event.set()
        logger.info("Autoplay stopped")
        self._callbacks.stopped()

    def status(self) -> AutoplayStatus:
        with self._lock:
            run = self._run
            if run is None:
                return AutoplayStatus(
                    enabled=False, message=self._last_message, interval=self._interval
                )
            return AutoplayStatus(
                enabled=True,
                message=run.message,
                interval=self._interval,
                consecutive_failures=run.failures,
            )

    def join(self, timeout: float | None = None) -> bool:
        """Wait for every supervising thread to exit.

        A run stopped and replaced by a new one may still be finishing its
        last turn, so earlier threads are joined too.

        Returns:
            True if all threads have exited (or none ever started).
        """
        with self._lock:
            threads = [t for t in self._threads if t.ident is not None]
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
        return not any(t.is_alive() for t in threads)

    # ------------------------------------------------------------------
    # Internal methods
    # ------------------------------------------------------------------

    def _loop(self, run: _Run) -> None:
        logger.debug("Autoplay thread started")
        try:
            while not run.stop_event.is_set():
                try:
                    self._callbacks.on_turn(run.message)
                except Exception as exc:
                    if self._record_failure(run, exc):
                        return
                else:
                    with self._lock:
                        run.failures = 0

                if run.stop_event.wait(self._interval):
                    break
        finally:
            logger.debug("Autoplay thread exiting")

    def _record_failure(self, run: _Run, exc: Exception) -> bool:
        """Count a failed turn. Returns True when the circuit breaker trips."""
        with self._lock:
            run.failures += 1
            failures = run.failures

        if failures < self._max_failures:
            logger.warning("Autoplay turn failed (%d in a row): %s", failures, exc)
            self._callbacks.error(exc)
            return False

        logger.warning(
            "Autoplay circuit breaker tripped after %d consecutive failures", failures
        )
        circuit = AutoplayCircuitOpenError(failures)
        circuit.__cause__ = exc
        self._callbacks.error(circuit)

        with self._lock:
            owned = self._run is run
            if owned:
                self._run = None
            run.stop_event.set()
        if owned:
            self._callbacks.stopped()
        return True
