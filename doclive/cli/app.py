"""Main Typer application.

Entry point: ``cargo-doc-live`` (configured via pyproject.toml scripts).
Cargo invokes external subcommands with the subcommand name as the
first argument, so ``cargo doc-live --open .`` arrives here as
``cargo-doc-live doc-live --open .``.
"""

from __future__ import annotations

import typer

from doclive import __version__
from doclive.cli.commands.doc_live import doc_live_cmd

app = typer.Typer(
    name="cargo-doc-live",
    help="Live-reloading preview server for cargo doc.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

app.command(
    name="doc-live",
    help="Build the docs, serve them, and rebuild on every change.",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)(doc_live_cmd)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"cargo-doc-live {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    """Live-reloading preview server for cargo doc."""


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
