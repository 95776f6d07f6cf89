"""doclive data models — all Pydantic v2, all frozen (immutable)."""

from doclive.models.events import (
    BuildCompleted,
    BuildOutcome,
    ChangeKind,
    DebounceElapsed,
    PathChanged,
    ProcessSignal,
    SignalKind,
    WatchEvent,
)
from doclive.models.project import (
    BrowserCommand,
    BuildCommand,
    PackageInfo,
    ProjectMetadata,
    Theme,
)
from doclive.models.states import BUILD_STATES, VALID_TRANSITIONS, OrchestratorState

__all__ = [
    # events
    "ChangeKind",
    "SignalKind",
    "BuildOutcome",
    "PathChanged",
    "ProcessSignal",
    "BuildCompleted",
    "DebounceElapsed",
    "WatchEvent",
    # states
    "OrchestratorState",
    "VALID_TRANSITIONS",
    "BUILD_STATES",
    # project
    "Theme",
    "PackageInfo",
    "ProjectMetadata",
    "BuildCommand",
    "BrowserCommand",
]
