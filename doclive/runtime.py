"""Process bootstrap — wires every component together and runs them.

Ownership is explicit: the event queue, the reload channel, the build
supervisor and the server are created here, handed to whoever needs
them, and torn down here when the orchestrator reaches its terminal
state.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable

from rich.console import Console

from doclive.config import DocLiveConfig
from doclive.core.build_supervisor import BuildSupervisor
from doclive.core.filterer import build_filter
from doclive.core.orchestrator import ActionOrchestrator
from doclive.core.reload_channel import ReloadChannel
from doclive.core.watcher import (
    WatchSource,
    install_signal_handlers,
    remove_signal_handlers,
)
from doclive.models.events import ProcessSignal, SignalKind, WatchEvent
from doclive.models.project import BrowserCommand, PackageInfo, ProjectMetadata, Theme
from doclive.project.browser import open_url
from doclive.server.app import create_app, start_server

logger = logging.getLogger(__name__)


async def serve(
    settings: DocLiveConfig,
    metadata: ProjectMetadata,
    package: PackageInfo,
    *,
    open_browser: bool = False,
    browser: BrowserCommand | None = None,
    clear: bool = False,
    theme: Theme | None = None,
    extra_args: list[str] | None = None,
    console: Console | None = None,
    on_ready: Callable[[str], None] | None = None,
) -> None:
    """Serve and rebuild the docs until a termination signal arrives.

    Raises whatever fatal startup error occurs (filter construction,
    missing watch root, port binding) and
    :class:`~doclive.core.watcher.WatchRootLostError` if the workspace
    disappears while running.
    """
    console = console or Console()
    events: asyncio.Queue[WatchEvent] = asyncio.Queue()
    channel = ReloadChannel()

    predicate = build_filter(
        metadata.workspace_root,
        target_directory=metadata.target_directory,
        extra_ignores=settings.extra_ignores,
        ignore_file=settings.ignore_file,
    )
    watcher = WatchSource([metadata.workspace_root], events, predicate)
    watcher.check_roots()

    supervisor = BuildSupervisor(events, cancel_timeout=settings.cancel_timeout_seconds)
    orchestrator = ActionOrchestrator(
        events,
        supervisor=supervisor,
        channel=channel,
        command=settings.build(extra_args),
        debounce=settings.debounce_seconds,
        before_build=console.clear if clear else None,
        status=functools.partial(console.print, markup=False, highlight=False),
    )

    app = create_app(
        metadata.doc_directory,
        channel,
        default_crate=package.crate_dir,
        theme=theme,
        prefix=settings.route_prefix,
    )
    server = await start_server(app, settings.host, settings.preferred_port)
    url = f"{server.url}/{package.crate_dir}/"
    console.print(f"Serving docs at: [link={url}]{url}[/link]")

    signals = install_signal_handlers(events)
    watch_task = asyncio.create_task(watcher.run(), name="watcher")
    run_task = asyncio.create_task(
        orchestrator.run(initial_build=settings.initial_build), name="orchestrator"
    )
    browser_launch: asyncio.Future[bool] | None = None
    if open_browser:
        browser_launch = asyncio.get_running_loop().run_in_executor(
            None, open_url, url, browser
        )
    if on_ready is not None:
        on_ready(url)

    try:
        done, _ = await asyncio.wait(
            {watch_task, run_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if run_task not in done:
            # The watcher died; shut the orchestrator down the normal way.
            events.put_nowait(ProcessSignal(signal=SignalKind.TERMINATE))
            await run_task
        run_task.result()
        watcher.stop()
        await watch_task
    finally:
        watcher.stop()
        if not watch_task.done():
            watch_task.cancel()
        remove_signal_handlers(signals)
        channel.close()
        await supervisor.shutdown()
        await server.close()
        if browser_launch is not None:
            # Console browsers can hold the launch open; do not wait on them
            await asyncio.wait({browser_launch}, timeout=1.0)
    logger.debug("Shut down cleanly")
