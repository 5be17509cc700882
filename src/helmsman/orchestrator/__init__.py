"""Turn engine and autoplay coordinator.

Exports the public API for running conversational turns:
- TurnEngine, TurnResult: the model/tool round loop
- AutoplayCoordinator, AutoplayStatus: recurring turns on a timer
- TurnConfig, TurnState, AutoplayState: configuration and state enums
- TurnCallbacks, AutoplayCallbacks: display hooks
"""

from helmsman.orchestrator.autoplay import AutoplayCoordinator, AutoplayStatus
from helmsman.orchestrator.callbacks import (
    AutoplayCallbacks,
    TurnCallbacks,
    logging_turn_callbacks,
)
from helmsman.orchestrator.config import AutoplayState, TurnConfig, TurnState
from helmsman.orchestrator.turn import TurnEngine, TurnResult

__all__ = [
    "AutoplayCallbacks",
    "AutoplayCoordinator",
    "AutoplayState",
    "AutoplayStatus",
    "TurnCallbacks",
    "TurnConfig",
    "TurnEngine",
    "TurnResult",
    "TurnState",
    "logging_turn_callbacks",
]
