"""Build supervisor — runs the documentation build as a subprocess.

Every :meth:`BuildSupervisor.start` is paired with exactly one
``BuildCompleted`` event on the orchestrator's queue, unless the build is
cancelled first, in which case it produces none.  At most one build
process is alive at any instant.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import os
import signal
from typing import Protocol, runtime_checkable

from doclive.models.events import BuildCompleted, BuildOutcome, WatchEvent
from doclive.models.project import BuildCommand

logger = logging.getLogger(__name__)

# Builds run in their own session so the whole process group (cargo and the
# rustdoc processes it spawns) can be signalled at once.
_PROCESS_GROUPS = os.name == "posix"


class BuildAlreadyRunningError(RuntimeError):
    """Raised when a build is started while another is still alive."""


class BuildHandle:
    """A started build: its id, its process (if one was spawned) and the
    task waiting on it."""

    def __init__(self, build_id: int, command: BuildCommand) -> None:
        self.build_id = build_id
        self.command = command
        self.process: asyncio.subprocess.Process | None = None
        self.waiter: asyncio.Task[None] | None = None
        self.cancelled = False

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    def __repr__(self) -> str:
        pid = self.process.pid if self.process is not None else None
        return f"BuildHandle(id={self.build_id}, pid={pid}, cancelled={self.cancelled})"


@runtime_checkable
class BuildRunner(Protocol):
    """What the orchestrator needs from a build backend."""

    async def start(self, command: BuildCommand) -> BuildHandle:
        ...

    async def cancel(self, handle: BuildHandle) -> None:
        ...


class BuildSupervisor:
    """Spawns the build command and reports its outcome.

    Parameters
    ----------
    events:
        Queue the ``BuildCompleted`` events are posted to.
    cancel_timeout:
        Seconds to wait after SIGTERM before resorting to SIGKILL.
    """

    def __init__(
        self, events: asyncio.Queue[WatchEvent], *, cancel_timeout: float = 5.0
    ) -> None:
        self._events = events
        self._cancel_timeout = cancel_timeout
        self._ids = itertools.count(1)
        self._current: BuildHandle | None = None

    @property
    def current(self) -> BuildHandle | None:
        """The live build, if any."""
        if self._current is not None and self._current.running:
            return self._current
        return None

    async def start(self, command: BuildCommand) -> BuildHandle:
        """Spawn ``command``; its completion arrives later on the queue.

        A command that cannot be spawned at all completes immediately
        with a failed outcome rather than raising.
        """
        if self.current is not None:
            raise BuildAlreadyRunningError(
                f"Build {self._current.build_id} is still running"
            )

        handle = BuildHandle(next(self._ids), command)
        logger.info("Running %s", command)
        try:
            handle.process = await asyncio.create_subprocess_exec(
                command.program, *command.args, start_new_session=_PROCESS_GROUPS
            )
        except OSError as exc:
            logger.error("Cannot run %s: %s", command.program, exc)
            outcome = BuildOutcome.failed(None, f"cannot run {command.program}: {exc}")
            self._events.put_nowait(BuildCompleted(build_id=handle.build_id, outcome=outcome))
            return handle

        self._current = handle
        handle.waiter = asyncio.create_task(
            self._wait(handle, handle.process), name=f"build-{handle.build_id}"
        )
        return handle

    async def _wait(self, handle: BuildHandle, process: asyncio.subprocess.Process) -> None:
        returncode = await process.wait()
        if handle.cancelled:
            logger.debug("Build %d cancelled (status %s)", handle.build_id, returncode)
            return
        outcome = BuildOutcome.from_returncode(returncode)
        await self._events.put(BuildCompleted(build_id=handle.build_id, outcome=outcome))

    async def cancel(self, handle: BuildHandle) -> None:
        """Stop ``handle``'s process and reap it.  No completion is posted."""
        handle.cancelled = True
        process = handle.process
        if process is not None and process.returncode is None:
            logger.info("Stopping build %d (pid %d)", handle.build_id, process.pid)
            _signal_build(process, kill=False)
            try:
                await asyncio.wait_for(process.wait(), self._cancel_timeout)
            except asyncio.TimeoutError:
                logger.warning("Build %d ignored SIGTERM, killing", handle.build_id)
                _signal_build(process, kill=True)
                await process.wait()
            if _PROCESS_GROUPS:
                # Anything the build spawned that outlived it
                _signal_build(process, kill=True)
        if handle.waiter is not None:
            await handle.waiter

    async def shutdown(self) -> None:
        """Cancel whatever is running."""
        if self._current is not None:
            await self.cancel(self._current)


def _signal_build(process: asyncio.subprocess.Process, *, kill: bool) -> None:
    """SIGTERM (or SIGKILL) the build's whole process group.

    Without process groups only the direct child can be signalled.
    """
    try:
        if _PROCESS_GROUPS:
            os.killpg(process.pid, signal.SIGKILL if kill else signal.SIGTERM)
        elif kill:
            process.kill()
        else:
            process.terminate()
    except ProcessLookupError:
        pass
    except PermissionError as exc:
        # macOS refuses killpg on a group left with only zombies
        logger.debug("Cannot signal build group %d: %s", process.pid, exc)
