"""Watch events — the only inputs the Action Orchestrator reacts to.

Every event is an immutable Pydantic model carrying an ``event_kind``
discriminator, so a single ``asyncio.Queue[WatchEvent]`` can carry the
output of the watcher, the signal handlers, the debounce timer and the
Build Supervisor in arrival order.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class ChangeKind(str, Enum):
    """Kind of filesystem change reported by the watcher."""

    CREATE = "create"
    MODIFY = "modify"
    REMOVE = "remove"
    RENAME = "rename"


class SignalKind(str, Enum):
    """Process signals forwarded into the event stream."""

    INTERRUPT = "interrupt"
    TERMINATE = "terminate"
    HANGUP = "hangup"
    QUIT = "quit"

    @property
    def is_termination(self) -> bool:
        """Every forwarded signal currently requests shutdown."""
        return self in _TERMINATION_SIGNALS


_TERMINATION_SIGNALS = frozenset(
    {SignalKind.INTERRUPT, SignalKind.TERMINATE, SignalKind.HANGUP, SignalKind.QUIT}
)


class BuildOutcome(BaseModel):
    """Result of one invocation of the build command.

    ``exit_status`` is ``None`` for a failure where no process ever ran
    (e.g. the executable could not be found).
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    exit_status: int | None = None
    reason: str = ""

    @classmethod
    def succeeded(cls) -> BuildOutcome:
        return cls(success=True, exit_status=0)

    @classmethod
    def failed(cls, exit_status: int | None, reason: str = "") -> BuildOutcome:
        return cls(success=False, exit_status=exit_status, reason=reason)

    @classmethod
    def from_returncode(cls, returncode: int) -> BuildOutcome:
        if returncode == 0:
            return cls.succeeded()
        return cls.failed(returncode, f"build exited with status {returncode}")


class PathChanged(BaseModel):
    """A filesystem path changed (already passed the filter)."""

    model_config = ConfigDict(frozen=True)

    event_kind: Literal["path_changed"] = "path_changed"
    path: Path
    change: ChangeKind = ChangeKind.MODIFY


class ProcessSignal(BaseModel):
    """An OS signal delivered to the process."""

    model_config = ConfigDict(frozen=True)

    event_kind: Literal["process_signal"] = "process_signal"
    signal: SignalKind


class BuildCompleted(BaseModel):
    """A build started by the Build Supervisor has exited."""

    model_config = ConfigDict(frozen=True)

    event_kind: Literal["build_completed"] = "build_completed"
    build_id: int
    outcome: BuildOutcome


class DebounceElapsed(BaseModel):
    """The orchestrator's debounce timer fired.

    ``generation`` identifies the timer; a reset bumps the generation so
    a timer that was already queued when it got reset is recognised as
    stale.
    """

    model_config = ConfigDict(frozen=True)

    event_kind: Literal["debounce_elapsed"] = "debounce_elapsed"
    generation: int


WatchEvent = Annotated[
    Union[PathChanged, ProcessSignal, BuildCompleted, DebounceElapsed],
    Field(discriminator="event_kind"),
]
