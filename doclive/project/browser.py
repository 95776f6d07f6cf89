"""Browser launcher.

Follows cargo's lookup order for ``cargo doc --open``: the
``CARGO_DOC_BROWSER`` variable, then ``doc.browser`` in cargo config
files, then ``BROWSER``.  With nothing configured the OS default is used
via :mod:`webbrowser`.  Launching never raises; failures are logged.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import tomllib
import webbrowser
from collections.abc import Mapping
from pathlib import Path

from doclive.models.project import BrowserCommand

logger = logging.getLogger(__name__)

CONFIG_NAMES = ("config.toml", "config")


def cargo_config_files(cwd: Path, env: Mapping[str, str] | None = None) -> list[Path]:
    """Cargo config files in precedence order (closest first)."""
    env = os.environ if env is None else env
    found: list[Path] = []
    for directory in [cwd, *cwd.parents]:
        for name in CONFIG_NAMES:
            candidate = directory / ".cargo" / name
            if candidate.is_file():
                found.append(candidate)
                break
    cargo_home = Path(env["CARGO_HOME"]) if env.get("CARGO_HOME") else Path.home() / ".cargo"
    for name in CONFIG_NAMES:
        candidate = cargo_home / name
        if candidate.is_file() and candidate not in found:
            found.append(candidate)
            break
    return found


def _parse_value(value: object, source: str) -> BrowserCommand | None:
    if isinstance(value, str) and value.strip():
        parts = shlex.split(value)
        return BrowserCommand(program=parts[0], args=parts[1:], source=source)
    if isinstance(value, list) and value and all(isinstance(v, str) for v in value):
        return BrowserCommand(program=value[0], args=list(value[1:]), source=source)
    if value is not None:
        logger.warning("Ignoring invalid browser setting in %s: %r", source, value)
    return None


def configured_browser(
    cwd: Path | None = None, env: Mapping[str, str] | None = None
) -> BrowserCommand | None:
    """The user's configured browser, or ``None`` for the OS default."""
    env = os.environ if env is None else env
    cwd = Path.cwd() if cwd is None else cwd

    if env.get("CARGO_DOC_BROWSER"):
        return _parse_value(env["CARGO_DOC_BROWSER"], "CARGO_DOC_BROWSER")

    for path in cargo_config_files(cwd, env):
        try:
            data = tomllib.loads(path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            logger.warning("Cannot read cargo config %s: %s", path, exc)
            continue
        doc = data.get("doc")
        if isinstance(doc, dict) and "browser" in doc:
            command = _parse_value(doc["browser"], str(path))
            if command is not None:
                return command

    if env.get("BROWSER"):
        return _parse_value(env["BROWSER"], "BROWSER")
    return None


def open_url(url: str, browser: BrowserCommand | None = None) -> bool:
    """Open ``url``; fire-and-forget.  Returns whether a launch was made."""
    if browser is not None:
        cmd = [browser.program, *browser.args, url]
        logger.info("Opening %s with %s", url, browser.program)
        try:
            subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as exc:
            logger.error("Cannot launch browser %s (from %s): %s", browser.program, browser.source, exc)
            return False
        return True

    logger.info("Opening %s", url)
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as exc:
        logger.error("Cannot open a browser: %s", exc)
        return False
    if not opened:
        logger.error("No browser available to open %s", url)
    return opened
