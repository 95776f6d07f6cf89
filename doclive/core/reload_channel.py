"""Reload channel — broadcasts "reload now" to every connected viewer.

The channel is a generation counter plus a single shared waiter.
``notify()`` bumps the generation and wakes whoever is waiting, without
awaiting anything itself, so a slow or dead viewer can never stall the
orchestrator.  Each :class:`Subscription` keeps a cursor (the generation
it last observed): a viewer only learns about notifications delivered
after it subscribed, and several notifications it did not get around to
collapse into one.
"""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType

logger = logging.getLogger(__name__)


class ReloadChannel:
    """Process-wide reload broadcast, owned by the runtime.

    Created once at startup, handed to the HTTP layer and the
    orchestrator, and closed at shutdown.
    """

    def __init__(self) -> None:
        self._generation = 0
        self._waiter = asyncio.Event()
        self._closed = False
        self._subscribers = 0

    @property
    def generation(self) -> int:
        """Number of notifications delivered so far."""
        return self._generation

    @property
    def subscriber_count(self) -> int:
        return self._subscribers

    @property
    def closed(self) -> bool:
        return self._closed

    def notify(self) -> None:
        """Wake every current subscriber.  Never blocks."""
        if self._closed:
            return
        self._generation += 1
        logger.debug(
            "Reload #%d sent to %d viewer(s)", self._generation, self._subscribers
        )
        self._wake()

    def close(self) -> None:
        """Release every waiting subscriber; later waits return immediately."""
        if self._closed:
            return
        self._closed = True
        self._wake()

    def subscribe(self) -> Subscription:
        return Subscription(self)

    def _wake(self) -> None:
        waiter, self._waiter = self._waiter, asyncio.Event()
        waiter.set()


class Subscription:
    """One viewer's cursor into the notification stream.

    Use as an async context manager so the subscriber count stays
    accurate when the viewer goes away::

        async with channel.subscribe() as subscription:
            reloaded = await subscription.wait()
    """

    def __init__(self, channel: ReloadChannel) -> None:
        self._channel = channel
        self._cursor = channel.generation
        self._active = False

    async def __aenter__(self) -> Subscription:
        self._active = True
        self._channel._subscribers += 1
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._active:
            self._active = False
            self._channel._subscribers -= 1

    async def wait(self) -> bool:
        """Suspend until the next notification.

        Returns ``True`` for a reload, ``False`` if the channel was
        closed instead.
        """
        channel = self._channel
        while self._cursor == channel.generation and not channel.closed:
            await channel._waiter.wait()
        if self._cursor == channel.generation:
            return False
        self._cursor = channel.generation
        return True
