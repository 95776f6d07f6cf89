"""doclive CLI — Typer-based command-line interface.

Provides the ``cargo-doc-live`` command, so the tool runs as the cargo
subcommand ``cargo doc-live``.  All output uses Rich for formatted
terminal display.
"""
