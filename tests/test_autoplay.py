"""Tests for helmsman.orchestrator.autoplay.AutoplayCoordinator.

Tests cover:
- Lifecycle: start, stop, status, join
- Error cases: empty message, double start, stop while idle
- Circuit breaker: trips after consecutive failures, reset on success
- Stop semantics: in-flight turns finish, no new turn starts
"""

from __future__ import annotations

import threading

import pytest

from helmsman.exceptions import (
    AutoplayAlreadyRunningError,
    AutoplayCircuitOpenError,
    AutoplayNotRunningError,
)
from helmsman.orchestrator import AutoplayCallbacks, AutoplayCoordinator, AutoplayState


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class Recorder:
    """Autoplay hooks that record what happened."""

    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [])
        self.turns: list[str] = []
        self.started: list[tuple[str, float]] = []
        self.stopped = 0
        self.errors: list[BaseException] = []
        self.first_turn = threading.Event()
        self._lock = threading.Lock()

    def on_turn(self, message: str) -> None:
        with self._lock:
            index = len(self.turns)
            self.turns.append(message)
        self.first_turn.set()
        outcome = self.outcomes[index] if index < len(self.outcomes) else None
        if isinstance(outcome, BaseException):
            raise outcome

    def callbacks(self) -> AutoplayCallbacks:
        return AutoplayCallbacks(
            on_turn=self.on_turn,
            on_started=lambda msg, interval: self.started.append((msg, interval)),
            on_stopped=self._on_stopped,
            on_error=self.errors.append,
        )

    def _on_stopped(self) -> None:
        with self._lock:
            self.stopped += 1


def failing(n: int) -> list[Exception]:
    return [RuntimeError(f"turn {i} failed") for i in range(n)]


# ===========================================================================
# Lifecycle
# ===========================================================================


class TestAutoplayLifecycle:
    def test_first_turn_runs_immediately(self):
        rec = Recorder()
        coordinator = AutoplayCoordinator(rec.callbacks(), interval=60)

        coordinator.start("Keep mining")
        assert rec.first_turn.wait(5)
        assert coordinator.state is AutoplayState.RUNNING

        coordinator.stop()
        assert coordinator.join(5)
        assert rec.turns == ["Keep mining"]
        assert rec.started == [("Keep mining", 60)]
        assert rec.stopped == 1
        assert coordinator.state is AutoplayState.IDLE

    def test_status(self):
        rec = Recorder()
        coordinator = AutoplayCoordinator(rec.callbacks(), interval=30)
        assert coordinator.status().enabled is False

        coordinator.start("Explore")
        status = coordinator.status()
        assert status.enabled is True
        assert status.message == "Explore"
        assert status.interval == 30

        coordinator.stop()
        coordinator.join(5)
        after = coordinator.status()
        assert after.enabled is False
        assert after.message == "Explore"

    def test_join_without_start(self):
        assert AutoplayCoordinator(Recorder().callbacks()).join(0.1) is True

    def test_restart_after_stop(self):
        rec = Recorder()
        coordinator = AutoplayCoordinator(rec.callbacks(), interval=60)
        coordinator.start("first")
        rec.first_turn.wait(5)
        coordinator.stop()
        coordinator.join(5)

        rec.first_turn.clear()
        coordinator.start("second")
        assert rec.first_turn.wait(5)
        coordinator.stop()
        coordinator.join(5)

        assert rec.turns == ["first", "second"]
        assert rec.stopped == 2

    def test_display_hook_errors_ignored(self):
        def explode(*args):
            raise RuntimeError("display broke")

        turned = threading.Event()
        coordinator = AutoplayCoordinator(
            AutoplayCallbacks(on_turn=lambda msg: turned.set(), on_started=explode, on_stopped=explode),
            interval=60,
        )
        coordinator.start("go")
        assert turned.wait(5)
        coordinator.stop()
        assert coordinator.join(5)


class TestAutoplayErrors:
    @pytest.mark.parametrize("message", ["", "   "])
    def test_empty_message_rejected(self, message):
        coordinator = AutoplayCoordinator(Recorder().callbacks())
        with pytest.raises(ValueError):
            coordinator.start(message)
        assert coordinator.state is AutoplayState.IDLE

    def test_double_start(self):
        rec = Recorder()
        coordinator = AutoplayCoordinator(rec.callbacks(), interval=60)
        coordinator.start("go")
        try:
            with pytest.raises(AutoplayAlreadyRunningError):
                coordinator.start("again")
        finally:
            coordinator.stop()
            coordinator.join(5)
        assert len(rec.started) == 1

    def test_stop_when_idle(self):
        coordinator = AutoplayCoordinator(Recorder().callbacks())
        with pytest.raises(AutoplayNotRunningError) as exc_info:
            coordinator.stop()
        assert str(exc_info.value) == "Autoplay not active"

    def test_invalid_settings(self):
        with pytest.raises(ValueError):
            AutoplayCoordinator(Recorder().callbacks(), interval=-1)
        with pytest.raises(ValueError):
            AutoplayCoordinator(Recorder().callbacks(), max_consecutive_failures=0)


# ===========================================================================
# Circuit breaker
# ===========================================================================


class TestAutoplayCircuitBreaker:
    def test_trips_after_three_failures(self):
        failures = failing(3)
        rec = Recorder(failures)
        coordinator = AutoplayCoordinator(rec.callbacks(), interval=0, max_consecutive_failures=3)

        coordinator.start("go")
        assert coordinator.join(5)

        assert len(rec.turns) == 3
        assert rec.errors[:2] == failures[:2]
        circuit = rec.errors[2]
        assert isinstance(circuit, AutoplayCircuitOpenError)
        assert circuit.failures == 3
        assert circuit.__cause__ is failures[2]
        assert rec.stopped == 1
        assert coordinator.state is AutoplayState.IDLE

    def test_stop_after_trip_raises(self):
        rec = Recorder(failing(1))
        coordinator = AutoplayCoordinator(rec.callbacks(), interval=0, max_consecutive_failures=1)
        coordinator.start("go")
        coordinator.join(5)

        with pytest.raises(AutoplayNotRunningError):
            coordinator.stop()
        assert rec.stopped == 1

    def test_success_resets_counter(self):
        outcomes = [
            RuntimeError("a"),
            RuntimeError("b"),
            None,
            RuntimeError("c"),
            RuntimeError("d"),
            RuntimeError("e"),
        ]
        rec = Recorder(outcomes)
        coordinator = AutoplayCoordinator(rec.callbacks(), interval=0, max_consecutive_failures=3)

        coordinator.start("go")
        assert coordinator.join(5)

        assert len(rec.turns) == 6
        assert isinstance(rec.errors[-1], AutoplayCircuitOpenError)
        assert str(rec.errors[-1].__cause__) == "e"

    def test_failures_visible_in_status(self):
        gate = threading.Event()
        second = threading.Event()

        def on_turn(message):
            if not second.is_set():
                second.set()
                raise RuntimeError("first fails")
            gate.wait(5)

        coordinator = AutoplayCoordinator(AutoplayCallbacks(on_turn=on_turn), interval=0)
        coordinator.start("go")
        second.wait(5)
        try:
            for _ in range(100):
                if coordinator.status().consecutive_failures == 1:
                    break
                threading.Event().wait(0.01)
            assert coordinator.status().consecutive_failures == 1
        finally:
            coordinator.stop()
            gate.set()
            coordinator.join(5)


# ===========================================================================
# Stop semantics
# ===========================================================================


class TestAutoplayStop:
    def test_in_flight_turn_completes(self):
        entered = threading.Event()
        gate = threading.Event()
        finished = threading.Event()
        count = []

        def on_turn(message):
            count.append(message)
            entered.set()
            gate.wait(5)
            finished.set()

        stopped = []
        coordinator = AutoplayCoordinator(
            AutoplayCallbacks(on_turn=on_turn, on_stopped=lambda: stopped.append(1)),
            interval=0,
        )
        coordinator.start("go")
        assert entered.wait(5)

        coordinator.stop()
        assert coordinator.state is AutoplayState.IDLE
        assert not finished.is_set()

        gate.set()
        assert coordinator.join(5)
        assert finished.is_set()
        assert count == ["go"]
        assert stopped == [1]

    def test_join_waits_for_replaced_run(self):
        entered = threading.Event()
        gate = threading.Event()

        def on_turn(message):
            if message == "first":
                entered.set()
                gate.wait(5)

        coordinator = AutoplayCoordinator(AutoplayCallbacks(on_turn=on_turn), interval=60)
        coordinator.start("first")
        assert entered.wait(5)
        coordinator.stop()
        coordinator.start("second")
        coordinator.stop()

        assert coordinator.join(0.2) is False
        gate.set()
        assert coordinator.join(5) is True
