"""Shared test fixtures for doclive."""

from __future__ import annotations

import asyncio
import itertools
import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from doclive.core.build_supervisor import BuildHandle
from doclive.models.events import BuildCompleted, BuildOutcome, WatchEvent
from doclive.models.project import BuildCommand, ProjectMetadata


class RecordingRunner:
    """``BuildRunner`` fake: records starts and cancels; the test decides
    when (and how) each build completes."""

    def __init__(self, events: asyncio.Queue[WatchEvent]) -> None:
        self.events = events
        self.started: list[BuildHandle] = []
        self.cancelled: list[BuildHandle] = []
        self.alive: set[int] = set()
        self.max_alive = 0
        self._ids = itertools.count(1)

    async def start(self, command: BuildCommand) -> BuildHandle:
        handle = BuildHandle(next(self._ids), command)
        self.started.append(handle)
        self.alive.add(handle.build_id)
        self.max_alive = max(self.max_alive, len(self.alive))
        return handle

    async def cancel(self, handle: BuildHandle) -> None:
        handle.cancelled = True
        self.cancelled.append(handle)
        self.alive.discard(handle.build_id)

    def complete(self, success: bool = True, exit_status: int = 1) -> BuildCompleted:
        """Finish the most recent build and post its completion."""
        handle = self.started[-1]
        self.alive.discard(handle.build_id)
        outcome = BuildOutcome.succeeded() if success else BuildOutcome.failed(exit_status)
        event = BuildCompleted(build_id=handle.build_id, outcome=outcome)
        self.events.put_nowait(event)
        return event


async def drain(orchestrator: Any, events: asyncio.Queue[WatchEvent]) -> None:
    """Feed every queued event to ``orchestrator``."""
    while not events.empty():
        await orchestrator.handle(events.get_nowait())


@pytest.fixture
def recording_runner_cls() -> type[RecordingRunner]:
    return RecordingRunner


@pytest.fixture
def drain_events() -> Callable[..., Any]:
    return drain


@pytest.fixture
def build_command() -> BuildCommand:
    """A build command that is never actually executed."""
    return BuildCommand(program="cargo", args=["doc"])


@pytest.fixture
def python_command() -> Callable[[str], BuildCommand]:
    """Factory fixture: a real build command running inline Python."""

    def _factory(source: str) -> BuildCommand:
        return BuildCommand(program=sys.executable, args=["-c", source])

    return _factory


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A minimal cargo-like workspace with a built doc tree."""
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "Cargo.toml").write_text('[package]\nname = "my-crate"\n')
    (root / "src" / "lib.rs").write_text("//! Docs.\n")
    crate = root / "target" / "doc" / "my_crate"
    crate.mkdir(parents=True)
    (crate / "index.html").write_text(
        "<!DOCTYPE html><html><body><h1>my_crate</h1></body></html>"
    )
    (root / "target" / "doc" / "static.css").write_text("body { color: black; }\n")
    return root


@pytest.fixture
def metadata_json(workspace: Path) -> Callable[..., str]:
    """Factory fixture: ``cargo metadata`` JSON for the test workspace."""

    def _factory(with_root: bool = True, **overrides: Any) -> str:
        packages = [
            {
                "name": "helper-lib",
                "version": "0.1.0",
                "id": "helper-lib 0.1.0 (path+file:///ws/helper)",
                "manifest_path": str(workspace / "helper" / "Cargo.toml"),
                "dependencies": [],
            }
        ]
        if with_root:
            packages.append(
                {
                    "name": "my-crate",
                    "version": "0.1.0",
                    "id": "my-crate 0.1.0 (path+file:///ws)",
                    "manifest_path": str(workspace / "Cargo.toml"),
                    "dependencies": [],
                }
            )
        data: dict[str, Any] = {
            "packages": packages,
            "workspace_members": [p["id"] for p in packages],
            "resolve": None,
            "target_directory": str(workspace / "target"),
            "version": 1,
            "workspace_root": str(workspace),
        }
        data.update(overrides)
        return json.dumps(data)

    return _factory


@pytest.fixture
def metadata(metadata_json: Callable[..., str]) -> ProjectMetadata:
    return ProjectMetadata.model_validate_json(metadata_json())
