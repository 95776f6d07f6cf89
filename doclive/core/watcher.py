"""Watcher adapter — turns filesystem changes and OS signals into events.

Filesystem notifications come from ``watchfiles``; every change is run
through the :class:`~doclive.core.filterer.FilterPredicate` before it is
posted, so ignored paths never reach the orchestrator.  Signals are
forwarded as :class:`~doclive.models.events.ProcessSignal` events on the
same queue.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Sequence
from pathlib import Path

from watchfiles import Change, awatch

from doclive.core.filterer import FilterPredicate
from doclive.models.events import ChangeKind, PathChanged, ProcessSignal, SignalKind, WatchEvent

logger = logging.getLogger(__name__)


class WatchRootLostError(RuntimeError):
    """Raised when a watched root is missing, at startup or later."""


CHANGE_KINDS: dict[Change, ChangeKind] = {
    Change.added: ChangeKind.CREATE,
    Change.modified: ChangeKind.MODIFY,
    Change.deleted: ChangeKind.REMOVE,
}


class WatchSource:
    """Posts filtered :class:`PathChanged` events for a set of roots.

    Parameters
    ----------
    roots:
        Directories to watch recursively.
    events:
        Orchestrator queue.
    predicate:
        Filter applied to every raw change.
    batch_ms:
        How long ``watchfiles`` gathers raw notifications into one batch.
        Real debouncing is the orchestrator's job; this just keeps the
        notification backend from waking up per byte written.
    retry_delay:
        Pause before re-arming the watcher after a backend error.
    """

    def __init__(
        self,
        roots: Sequence[Path],
        events: asyncio.Queue[WatchEvent],
        predicate: FilterPredicate,
        *,
        batch_ms: int = 10,
        retry_delay: float = 1.0,
    ) -> None:
        self.roots = [Path(r) for r in roots]
        self._events = events
        self._predicate = predicate
        self._batch_ms = batch_ms
        self._retry_delay = retry_delay
        self._stop = asyncio.Event()

    def accept(self, change: Change, path: str) -> bool:
        """Apply the filter predicate to one raw change."""
        included = self._predicate.matches(Path(path), CHANGE_KINDS[change])
        if not included:
            logger.debug("Filtered out %s", path)
        return included

    def publish(self, changes: set[tuple[Change, str]]) -> int:
        """Post a batch of raw changes, filtering each one.  Returns the
        number of events posted."""
        posted = 0
        for change, raw_path in sorted(changes, key=lambda c: c[1]):
            if not self.accept(change, raw_path):
                continue
            self._events.put_nowait(
                PathChanged(path=Path(raw_path), change=CHANGE_KINDS[change])
            )
            posted += 1
        return posted

    def check_roots(self) -> None:
        missing = [str(r) for r in self.roots if not r.is_dir()]
        if missing:
            raise WatchRootLostError(f"Watch root does not exist: {', '.join(missing)}")

    async def run(self) -> None:
        """Watch until :meth:`stop` is called.

        Backend errors are logged and the watch is re-armed, unless a
        root has disappeared, which raises :class:`WatchRootLostError`.
        """
        self.check_roots()
        logger.debug("Watching %s", ", ".join(str(r) for r in self.roots))
        while not self._stop.is_set():
            try:
                async for changes in awatch(
                    *self.roots,
                    watch_filter=None,
                    debounce=self._batch_ms,
                    step=self._batch_ms,
                    stop_event=self._stop,
                    recursive=True,
                    ignore_permission_denied=True,
                ):
                    self.publish(changes)
            except (OSError, RuntimeError) as exc:
                self.check_roots()
                logger.error("Watcher error: %s", exc)
                try:
                    await asyncio.wait_for(self._stop.wait(), self._retry_delay)
                except asyncio.TimeoutError:
                    pass

    def stop(self) -> None:
        self._stop.set()


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------


def _forwarded_signals() -> dict[signal.Signals, SignalKind]:
    forwarded = {
        signal.SIGINT: SignalKind.INTERRUPT,
        signal.SIGTERM: SignalKind.TERMINATE,
    }
    if hasattr(signal, "SIGHUP"):
        forwarded[signal.SIGHUP] = SignalKind.HANGUP
    if hasattr(signal, "SIGQUIT"):
        forwarded[signal.SIGQUIT] = SignalKind.QUIT
    return forwarded


def install_signal_handlers(events: asyncio.Queue[WatchEvent]) -> list[signal.Signals]:
    """Forward termination signals into ``events``.  Returns the signals
    that were hooked so they can be restored later."""
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for signum, kind in _forwarded_signals().items():
        event = ProcessSignal(signal=kind)
        try:
            loop.add_signal_handler(signum, events.put_nowait, event)
        except NotImplementedError:
            # No add_signal_handler on Windows event loops
            signal.signal(
                signum,
                lambda *_, event=event: loop.call_soon_threadsafe(events.put_nowait, event),
            )
        installed.append(signum)
    return installed


def remove_signal_handlers(signums: Sequence[signal.Signals]) -> None:
    loop = asyncio.get_running_loop()
    for signum in signums:
        try:
            loop.remove_signal_handler(signum)
        except NotImplementedError:
            signal.signal(signum, signal.SIG_DFL)
