"""Core rebuild loop: filter, build supervisor, reload channel, orchestrator."""
