"""Action orchestrator — the watch–debounce–rebuild–reload state machine.

A single consumer loop owns the :class:`OrchestratorState` and processes
:data:`WatchEvent` values strictly in arrival order.  Filesystem changes,
signals, the debounce timer and build completions all reach it through
one ``asyncio.Queue``, so no state is ever shared with the producers.

Transition table::

    any                        ProcessSignal      -> Terminal (cancel build)
    Idle                       PathChanged        -> Debouncing (start timer)
    Debouncing                 PathChanged        -> Debouncing (reset timer)
    Debouncing                 DebounceElapsed    -> Building (spawn build)
    Building                   PathChanged        -> BuildingWithPendingRestart
    Building                   BuildCompleted(ok) -> Idle (notify viewers)
    Building                   BuildCompleted(ko) -> Idle (report failure)
    BuildingWithPendingRestart BuildCompleted(*)  -> Building (respawn)

Overlapping triggers chain strictly one build at a time: however many
changes arrive during a build, exactly one follow-up build runs after it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from doclive.core.build_supervisor import BuildHandle, BuildRunner
from doclive.core.reload_channel import ReloadChannel
from doclive.models.events import (
    BuildCompleted,
    DebounceElapsed,
    PathChanged,
    ProcessSignal,
    WatchEvent,
)
from doclive.models.project import BuildCommand
from doclive.models.states import BUILD_STATES, VALID_TRANSITIONS, OrchestratorState

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class ActionOrchestrator:
    """Drives the Build Supervisor and the Reload Channel from watch events.

    Parameters
    ----------
    events:
        The queue every producer posts to.  The orchestrator is its only
        consumer; the debounce timer posts back into it.
    supervisor:
        Build backend (normally :class:`~doclive.core.build_supervisor.BuildSupervisor`).
    channel:
        Reload channel notified after each successful build.
    command:
        Build command, including any pass-through arguments.
    debounce:
        Quiet period, in seconds, before a burst of changes starts a build.
    before_build:
        Called right before every build is spawned (e.g. to clear the
        terminal).  A failing hook is logged and the build goes ahead.
    status:
        Receives the user-facing status lines: build started, docs
        updated, build failed.
    """

    def __init__(
        self,
        events: asyncio.Queue[WatchEvent],
        *,
        supervisor: BuildRunner,
        channel: ReloadChannel,
        command: BuildCommand,
        debounce: float = 0.05,
        before_build: Callable[[], None] | None = None,
        status: Callable[[str], None] | None = None,
    ) -> None:
        self._events = events
        self._supervisor = supervisor
        self._channel = channel
        self._command = command
        self._debounce = debounce
        self._before_build = before_build
        self._status = status

        self._state = OrchestratorState.IDLE
        self._timer: asyncio.TimerHandle | None = None
        self._timer_generation = 0
        self._build: BuildHandle | None = None

        self.history: list[tuple[OrchestratorState, OrchestratorState]] = []
        self.builds_started = 0
        self.reloads_sent = 0

    @property
    def state(self) -> OrchestratorState:
        return self._state

    # ------------------------------------------------------------------
    # Event loop
    # ------------------------------------------------------------------

    async def run(self, *, initial_build: bool = False) -> None:
        """Consume events until a termination signal arrives."""
        try:
            if initial_build:
                await self._start_build()
            while self._state is not OrchestratorState.TERMINAL:
                event = await self._events.get()
                await self.handle(event)
        finally:
            self._cancel_timer()

    async def handle(self, event: WatchEvent) -> None:
        """Apply one event to the state machine."""
        if self._state is OrchestratorState.TERMINAL:
            logger.debug("Ignoring %s after shutdown", event.event_kind)
            return
        if isinstance(event, ProcessSignal):
            await self._on_signal(event)
        elif isinstance(event, PathChanged):
            await self._on_path_changed(event)
        elif isinstance(event, DebounceElapsed):
            await self._on_debounce_elapsed(event)
        elif isinstance(event, BuildCompleted):
            await self._on_build_completed(event)
        else:
            raise TypeError(f"Unknown watch event: {event!r}")

    async def shutdown(self) -> None:
        """Stop the timer and any running build, then go terminal."""
        if self._state is OrchestratorState.TERMINAL:
            return
        self._cancel_timer()
        if self._build is not None:
            build, self._build = self._build, None
            await self._supervisor.cancel(build)
        self._transition(OrchestratorState.TERMINAL)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _on_signal(self, event: ProcessSignal) -> None:
        if not event.signal.is_termination:
            logger.debug("Ignoring signal %s", event.signal.value)
            return
        logger.info("Received %s, shutting down", event.signal.value)
        await self.shutdown()

    async def _on_path_changed(self, event: PathChanged) -> None:
        logger.debug("%s: %s", event.change.value, event.path)
        if self._state is OrchestratorState.IDLE:
            self._arm_timer()
            self._transition(OrchestratorState.DEBOUNCING)
        elif self._state is OrchestratorState.DEBOUNCING:
            self._arm_timer()
            self._transition(OrchestratorState.DEBOUNCING)
        elif self._state is OrchestratorState.BUILDING:
            self._transition(OrchestratorState.BUILDING_WITH_PENDING_RESTART)
        # BUILDING_WITH_PENDING_RESTART: a restart is already queued

    async def _on_debounce_elapsed(self, event: DebounceElapsed) -> None:
        if (
            self._state is not OrchestratorState.DEBOUNCING
            or event.generation != self._timer_generation
        ):
            logger.debug("Stale debounce timer %d", event.generation)
            return
        self._timer = None
        await self._start_build()

    async def _on_build_completed(self, event: BuildCompleted) -> None:
        if (
            self._state not in BUILD_STATES
            or self._build is None
            or event.build_id != self._build.build_id
        ):
            logger.debug("Discarding completion of unknown build %d", event.build_id)
            return
        self._build = None

        if self._state is OrchestratorState.BUILDING_WITH_PENDING_RESTART:
            logger.info("Sources changed during build %d, rebuilding", event.build_id)
            await self._start_build()
            return

        outcome = event.outcome
        self._transition(OrchestratorState.IDLE)
        if outcome.success:
            logger.info("Build %d finished, reloading viewers", event.build_id)
            self._channel.notify()
            self.reloads_sent += 1
            self._report("Docs updated, reloading viewers")
        else:
            reason = outcome.reason or "unknown error"
            logger.warning("Build %d failed: %s", event.build_id, reason)
            self._report(f"Build failed: {reason}")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _start_build(self) -> None:
        if self._before_build is not None:
            _call_hook("before_build", self._before_build)
        self._transition(OrchestratorState.BUILDING)
        self.builds_started += 1
        self._report(f"Building: {self._command}")
        self._build = await self._supervisor.start(self._command)

    def _report(self, message: str) -> None:
        if self._status is not None:
            _call_hook("status", self._status, message)

    def _arm_timer(self) -> None:
        self._cancel_timer()
        self._timer_generation += 1
        event = DebounceElapsed(generation=self._timer_generation)
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce, self._events.put_nowait, event)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _transition(self, target: OrchestratorState) -> None:
        current = self._state
        if target not in VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransitionError(
                f"Cannot transition from {current.value} to {target.value}. "
                f"Allowed: {sorted(s.value for s in VALID_TRANSITIONS.get(current, set()))}"
            )
        if target is not current:
            logger.debug("State %s -> %s", current.value, target.value)
        self._state = target
        self.history.append((current, target))


def _call_hook(name: str, hook: Callable[..., None], *args: object) -> None:
    # A failing hook is logged and the caller carries on
    try:
        hook(*args)
    except Exception as exc:
        logger.warning("%s hook failed: %s", name, exc)
