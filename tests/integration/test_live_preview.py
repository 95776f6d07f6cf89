"""End-to-end tests: watcher, orchestrator, build supervisor and reload
channel working together against a real workspace and real processes.
"""

from __future__ import annotations

import asyncio
import io
import signal
import sys
from collections.abc import Callable
from pathlib import Path

import aiohttp
import pytest
from rich.console import Console

from doclive.config import DocLiveConfig
from doclive.core.build_supervisor import BuildSupervisor
from doclive.core.filterer import build_filter
from doclive.core.orchestrator import ActionOrchestrator
from doclive.core.reload_channel import ReloadChannel
from doclive.core.watcher import WatchSource
from doclive.models.events import ProcessSignal, SignalKind
from doclive.models.project import BuildCommand, ProjectMetadata
from doclive.models.states import OrchestratorState
from doclive.runtime import serve

# Appends to a log outside the workspace, then rewrites a page under target/doc.
BUILD_SCRIPT = """
import pathlib, sys
with open(sys.argv[1], "a") as fh:
    fh.write("build\\n")
page = pathlib.Path(sys.argv[2]) / "my_crate" / "index.html"
page.write_text("<!DOCTYPE html><html><body><h1>rebuilt</h1></body></html>")
"""

LONG_BUILD_SCRIPT = """
import pathlib, sys, time
pathlib.Path(sys.argv[1]).write_text("started")
time.sleep(60)
"""


async def wait_until(predicate: Callable[[], bool], timeout: float = 10.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)


def build_count(log: Path) -> int:
    return len(log.read_text().splitlines()) if log.exists() else 0


# ---------------------------------------------------------------------------
# Test: edit -> one rebuild -> one reload
# ---------------------------------------------------------------------------


class TestEditRebuildReload:
    """A source edit leads to exactly one build and one viewer reload."""

    def test_single_edit(self, workspace: Path, tmp_path: Path):
        log = tmp_path / "builds.log"
        command = BuildCommand(
            program=sys.executable,
            args=["-c", BUILD_SCRIPT, str(log), str(workspace / "target" / "doc")],
        )
        outcome: dict = {}

        async def scenario() -> None:
            events: asyncio.Queue = asyncio.Queue()
            channel = ReloadChannel()
            predicate = build_filter(
                workspace,
                target_directory=workspace / "target",
                include_environment=False,
            )
            watcher = WatchSource([workspace], events, predicate)
            supervisor = BuildSupervisor(events, cancel_timeout=2.0)
            orch = ActionOrchestrator(
                events,
                supervisor=supervisor,
                channel=channel,
                command=command,
                debounce=0.05,
            )

            async def early_viewer() -> bool:
                async with channel.subscribe() as subscription:
                    return await subscription.wait()

            viewer = asyncio.create_task(early_viewer())
            watch_task = asyncio.create_task(watcher.run())
            run_task = asyncio.create_task(orch.run())
            try:
                # Give the watcher time to register its roots.
                await asyncio.sleep(0.5)
                (workspace / "src" / "lib.rs").write_text("//! Changed docs.\n")

                await wait_until(lambda: orch.reloads_sent == 1)
                outcome["early"] = await asyncio.wait_for(viewer, 5)

                # The build's own output under target/ must not retrigger it.
                await asyncio.sleep(0.5)
                outcome["builds"] = orch.builds_started
                outcome["state"] = orch.state

                async with channel.subscribe() as late:
                    try:
                        await asyncio.wait_for(late.wait(), 0.2)
                    except TimeoutError:
                        outcome["late"] = "timeout"
            finally:
                events.put_nowait(ProcessSignal(signal=SignalKind.TERMINATE))
                await asyncio.wait_for(run_task, 5)
                watcher.stop()
                await asyncio.wait_for(watch_task, 5)
                await supervisor.shutdown()

        asyncio.run(scenario())

        assert outcome["early"] is True
        assert outcome["builds"] == 1
        assert build_count(log) == 1
        assert outcome["state"] is OrchestratorState.IDLE
        assert outcome["late"] == "timeout"
        assert "rebuilt" in (workspace / "target" / "doc" / "my_crate" / "index.html").read_text()


# ---------------------------------------------------------------------------
# Test: termination during a build
# ---------------------------------------------------------------------------


class TestTerminationDuringBuild:
    """A termination signal cancels the running build and reaps it."""

    def test_interrupt_cancels_build(self, tmp_path: Path):
        marker = tmp_path / "started"
        command = BuildCommand(
            program=sys.executable, args=["-c", LONG_BUILD_SCRIPT, str(marker)]
        )
        outcome: dict = {}

        async def scenario() -> None:
            events: asyncio.Queue = asyncio.Queue()
            channel = ReloadChannel()
            supervisor = BuildSupervisor(events, cancel_timeout=2.0)
            orch = ActionOrchestrator(
                events, supervisor=supervisor, channel=channel, command=command
            )
            run_task = asyncio.create_task(orch.run(initial_build=True))
            await wait_until(marker.exists)

            handle = supervisor.current
            assert handle is not None
            events.put_nowait(ProcessSignal(signal=SignalKind.INTERRUPT))
            await asyncio.wait_for(run_task, 10)

            outcome["returncode"] = handle.process.returncode
            outcome["current"] = supervisor.current
            outcome["state"] = orch.state
            outcome["generation"] = channel.generation
            outcome["reloads"] = orch.reloads_sent

        asyncio.run(scenario())

        assert outcome["returncode"] is not None
        assert outcome["current"] is None
        assert outcome["state"] is OrchestratorState.TERMINAL
        assert outcome["generation"] == 0
        assert outcome["reloads"] == 0


# ---------------------------------------------------------------------------
# Test: the full server
# ---------------------------------------------------------------------------


@pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX signals")
class TestServe:
    """serve() answers HTTP with decorated pages and stops on SIGTERM."""

    def test_serve_until_sigterm(self, workspace: Path, metadata: ProjectMetadata):
        settings = DocLiveConfig(
            build_command=sys.executable,
            build_args=["-c", "pass"],
            preferred_port=0,
            initial_build=False,
        )
        package = metadata.root_package()
        fetched: dict = {}

        async def scenario() -> None:
            ready: asyncio.Future = asyncio.get_running_loop().create_future()

            async def client() -> None:
                url = await ready
                async with aiohttp.ClientSession() as session:
                    async with session.get(url) as resp:
                        fetched["status"] = resp.status
                        fetched["body"] = await resp.text()
                signal.raise_signal(signal.SIGTERM)

            client_task = asyncio.create_task(client())
            await asyncio.wait_for(
                serve(settings, metadata, package, on_ready=ready.set_result), 15
            )
            await client_task

        asyncio.run(scenario())

        assert fetched["status"] == 200
        assert "<h1>my_crate</h1>" in fetched["body"]
        assert "<script data-doclive>" in fetched["body"]

    def test_build_status_is_printed(self, workspace: Path, metadata: ProjectMetadata):
        settings = DocLiveConfig(
            build_command=sys.executable,
            build_args=["-c", "pass"],
            preferred_port=0,
            initial_build=True,
        )
        output = io.StringIO()
        console = Console(file=output, width=200)

        async def scenario() -> None:
            async def stop_after_first_build() -> None:
                await wait_until(lambda: "Docs updated" in output.getvalue())
                signal.raise_signal(signal.SIGTERM)

            stopper = asyncio.create_task(stop_after_first_build())
            await asyncio.wait_for(
                serve(settings, metadata, metadata.root_package(), console=console), 15
            )
            await stopper

        asyncio.run(scenario())

        printed = output.getvalue()
        assert "Serving docs at:" in printed
        assert f"Building: {sys.executable} -c pass" in printed
        assert "Docs updated, reloading viewers" in printed

    def test_browser_is_opened_on_the_served_url(
        self, workspace: Path, metadata: ProjectMetadata, monkeypatch
    ):
        settings = DocLiveConfig(
            build_command=sys.executable,
            build_args=["-c", "pass"],
            preferred_port=0,
            initial_build=False,
        )
        opened: list[str] = []

        def fake_open(url, browser=None):
            opened.append(url)
            return True

        monkeypatch.setattr("doclive.runtime.open_url", fake_open)

        async def scenario() -> str:
            ready: asyncio.Future = asyncio.get_running_loop().create_future()

            async def stop_once_opened() -> None:
                await ready
                await wait_until(lambda: bool(opened))
                signal.raise_signal(signal.SIGTERM)

            stopper = asyncio.create_task(stop_once_opened())
            await asyncio.wait_for(
                serve(
                    settings,
                    metadata,
                    metadata.root_package(),
                    open_browser=True,
                    on_ready=ready.set_result,
                ),
                15,
            )
            await stopper
            return ready.result()

        url = asyncio.run(scenario())
        assert opened == [url]
        assert url.endswith("/my_crate/")
