"""HTTP application assembly and port binding."""

from __future__ import annotations

import logging
from pathlib import Path

from aiohttp import web

from doclive.core.reload_channel import ReloadChannel
from doclive.models.project import Theme
from doclive.server import livereload
from doclive.server.livereload import RELOAD_CHANNEL, client_script, theme_script
from doclive.server.static import StaticDocs
from doclive.server.transformer import payload_injector

logger = logging.getLogger(__name__)


class PortBindError(OSError):
    """Raised when no port at all could be bound."""


def create_app(
    doc_dir: Path,
    channel: ReloadChannel,
    *,
    default_crate: str | None = None,
    theme: Theme | None = None,
    prefix: str = livereload.DEFAULT_PREFIX,
) -> web.Application:
    """Build the aiohttp application serving ``doc_dir`` with live reload."""
    middlewares = [payload_injector(client_script(prefix))]
    if theme is not None:
        middlewares.append(payload_injector(theme_script(theme)))

    app = web.Application(middlewares=middlewares)
    app[RELOAD_CHANNEL] = channel
    livereload.add_routes(app, prefix)
    static = StaticDocs(doc_dir, default_crate=default_crate)
    app.router.add_get("/{tail:.*}", static.handle)
    return app


class DocServer:
    """A started server: its runner and the address it ended up on."""

    def __init__(self, runner: web.AppRunner, host: str, port: int) -> None:
        self.runner = runner
        self.host = host
        self.port = port

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    async def close(self) -> None:
        await self.runner.cleanup()


async def start_server(
    app: web.Application, host: str = "127.0.0.1", preferred_port: int = 4153
) -> DocServer:
    """Bind ``preferred_port`` if it is free, otherwise any free port.

    Raises
    ------
    PortBindError
        If not even an ephemeral port can be bound.
    """
    runner = web.AppRunner(app, handler_cancellation=True, access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host, preferred_port)
    try:
        await site.start()
    except OSError as exc:
        logger.debug("Port %d unavailable (%s), picking a free one", preferred_port, exc)
        await site.stop()
        site = web.TCPSite(runner, host, 0)
        try:
            await site.start()
        except OSError as exc:
            await runner.cleanup()
            raise PortBindError(exc.errno, f"Cannot bind {host}: {exc}") from exc

    bound = runner.addresses[0][1]
    logger.debug("Listening on %s:%d", host, bound)
    return DocServer(runner, host, bound)
