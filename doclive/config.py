"""Runtime configuration — env-driven.

Centralized settings using pydantic-settings. Reads from a .env file and
DOCLIVE_* environment variables. Everything here is read once at startup
and never changes afterwards.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from doclive.models.project import BuildCommand


class DocLiveConfig(BaseSettings):
    """Tool configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export DOCLIVE_LOG_LEVEL=DEBUG
        export DOCLIVE_PREFERRED_PORT=8080
        export DOCLIVE_BUILD_ARGS='["doc", "--no-deps"]'

    Or via .env file::

        DOCLIVE_DEBOUNCE_MS=200
        DOCLIVE_IGNORE_FILE=/home/me/.doclive-ignore
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DOCLIVE_",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    log_level: str = "INFO"

    # HTTP server: loopback only
    host: str = "127.0.0.1"
    preferred_port: int = 4153
    route_prefix: str = "/__doclive"

    # Build
    build_command: str = "cargo"
    build_args: list[str] = ["doc"]
    initial_build: bool = True
    cancel_timeout_seconds: float = 5.0

    # Watching
    debounce_ms: int = 50
    ignore_file: Path | None = None
    extra_ignores: list[str] = []

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000

    def build(self, extra_args: list[str] | None = None) -> BuildCommand:
        """The build command with any pass-through arguments appended."""
        command = BuildCommand(program=self.build_command, args=list(self.build_args))
        return command.with_extra_args(extra_args or [])

