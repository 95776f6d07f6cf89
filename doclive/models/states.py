"""Orchestrator state model — the transition table of the rebuild loop."""

from __future__ import annotations

from enum import Enum


class OrchestratorState(str, Enum):
    """States of the watch–debounce–rebuild–reload loop."""

    IDLE = "idle"
    DEBOUNCING = "debouncing"
    BUILDING = "building"
    BUILDING_WITH_PENDING_RESTART = "building_with_pending_restart"
    TERMINAL = "terminal"


# Valid state transitions: enforced by ActionOrchestrator._transition.
# Every live state may move to TERMINAL on a termination signal.
VALID_TRANSITIONS: dict[OrchestratorState, set[OrchestratorState]] = {
    OrchestratorState.IDLE: {
        OrchestratorState.DEBOUNCING,
        OrchestratorState.BUILDING,  # initial build at startup
        OrchestratorState.TERMINAL,
    },
    OrchestratorState.DEBOUNCING: {
        OrchestratorState.DEBOUNCING,
        OrchestratorState.BUILDING,
        OrchestratorState.TERMINAL,
    },
    OrchestratorState.BUILDING: {
        OrchestratorState.BUILDING_WITH_PENDING_RESTART,
        OrchestratorState.IDLE,
        OrchestratorState.TERMINAL,
    },
    OrchestratorState.BUILDING_WITH_PENDING_RESTART: {
        OrchestratorState.BUILDING,
        OrchestratorState.TERMINAL,
    },
    OrchestratorState.TERMINAL: set(),  # terminal
}

BUILD_STATES = frozenset(
    {OrchestratorState.BUILDING, OrchestratorState.BUILDING_WITH_PENDING_RESTART}
)
