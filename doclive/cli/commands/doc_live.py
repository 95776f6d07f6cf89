"""``cargo doc-live`` — build the docs, serve them, rebuild on change.

Runs until interrupted.  Exits non-zero if the project cannot be
discovered, the watch configuration is invalid, the watcher cannot
start, or no port can be bound.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from doclive.config import DocLiveConfig
from doclive.core.filterer import FilterConfigError
from doclive.core.watcher import WatchRootLostError
from doclive.models.project import Theme
from doclive.project.browser import configured_browser
from doclive.project.metadata import (
    ROOT_PACKAGE,
    ProjectDiscoveryError,
    load_metadata,
    resolve_package,
)
from doclive.runtime import serve
from doclive.server.app import PortBindError

console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def doc_live_cmd(
    ctx: typer.Context,
    open_target: Optional[str] = typer.Option(
        None,
        "--open",
        "-o",
        is_flag=False,
        flag_value=ROOT_PACKAGE,
        help="Open the docs in a browser: a package name, or '.' (the default) for the root package.",
    ),
    clear: bool = typer.Option(
        False, "--clear", "-c", help="Clear the terminal before every build."
    ),
    theme: Optional[Theme] = typer.Option(
        None, "--theme", help="Force a rustdoc display theme.", case_sensitive=False
    ),
    manifest_path: Optional[Path] = typer.Option(
        None, "--manifest-path", help="Path to Cargo.toml."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Serve ``cargo doc`` output with live reload.

    Arguments after ``--`` are passed to the build command verbatim.
    """
    settings = DocLiveConfig()
    configure_logging("DEBUG" if verbose else settings.log_level)
    extra_args = list(ctx.args)

    try:
        metadata = load_metadata(settings.build_command, manifest_path=manifest_path)
        package = resolve_package(metadata, open_target)
        browser = configured_browser() if open_target is not None else None
        asyncio.run(
            serve(
                settings,
                metadata,
                package,
                open_browser=open_target is not None,
                browser=browser,
                clear=clear,
                theme=theme,
                extra_args=extra_args,
                console=console,
            )
        )
    except (ProjectDiscoveryError, FilterConfigError, WatchRootLostError, PortBindError) as exc:
        err_console.print(f"[bold red]error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
