"""Static server — serves the documentation output directory.

HTML files are streamed through :class:`ChunkedResponse` so the
injection middlewares can decorate them; everything else goes through
aiohttp's ``FileResponse`` (ranges, conditional requests, sendfile).
Missing paths get a small HTML page pointing at the documentation that
does exist, instead of a bare 404.
"""

from __future__ import annotations

import asyncio
import html
import logging
import mimetypes
from collections.abc import AsyncIterator
from pathlib import Path
from typing import BinaryIO

from aiohttp import web

from doclive.server.transformer import HTML_CONTENT_TYPE, ChunkedResponse

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

_FALLBACK_TEMPLATE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Not found</title></head>
<body>
<h1>Nothing at {path}</h1>
<p>{message}</p>
<ul>
{links}
</ul>
</body>
</html>
"""


class StaticDocs:
    """Request handler for files under ``root``.

    Parameters
    ----------
    root:
        The documentation output directory (``target/doc``).
    default_crate:
        Crate the fallback page points at first.
    """

    def __init__(
        self, root: Path, *, default_crate: str | None = None, chunk_size: int = CHUNK_SIZE
    ) -> None:
        self.root = Path(root)
        self.default_crate = default_crate
        self._chunk_size = chunk_size

    async def handle(self, request: web.Request) -> web.StreamResponse:
        path = self._resolve(request.match_info.get("tail", ""))
        if path is not None and path.is_dir():
            if not request.path.endswith("/"):
                location = request.path + "/"
                if request.query_string:
                    location += "?" + request.query_string
                raise web.HTTPMovedPermanently(location=location)
            path = path / "index.html"
        if path is None or not path.is_file():
            return self.not_found(request)

        content_type, _ = mimetypes.guess_type(path.name)
        if content_type != HTML_CONTENT_TYPE:
            return web.FileResponse(path, chunk_size=self._chunk_size)

        try:
            fh = path.open("rb")
        except PermissionError as exc:
            logger.warning("Cannot read %s: %s", path, exc)
            raise web.HTTPForbidden() from exc
        except OSError as exc:
            logger.error("Cannot read %s: %s", path, exc)
            raise web.HTTPInternalServerError() from exc
        return ChunkedResponse(
            self._read_chunks(fh), content_type=HTML_CONTENT_TYPE, charset="utf-8"
        )

    def not_found(self, request: web.Request) -> ChunkedResponse:
        """The fallback page, decorated like any other HTML."""
        page = self.fallback_page(request.path).encode("utf-8")

        async def body() -> AsyncIterator[bytes]:
            yield page

        return ChunkedResponse(
            body(), status=404, content_type=HTML_CONTENT_TYPE, charset="utf-8"
        )

    def fallback_page(self, request_path: str) -> str:
        crates = self.available_crates()
        if self.default_crate and self.default_crate not in crates:
            message = (
                f"Documentation for <code>{html.escape(self.default_crate)}</code> "
                "has not been built yet. This page reloads when it is."
            )
        else:
            message = "Documentation is available for:"
        ordered = sorted(crates, key=lambda c: (c != self.default_crate, c))
        links = "\n".join(
            f'<li><a href="/{html.escape(c)}/">{html.escape(c)}</a></li>' for c in ordered
        )
        return _FALLBACK_TEMPLATE.format(
            path=html.escape(request_path), message=message, links=links
        )

    def available_crates(self) -> list[str]:
        """Top-level directories of the output that hold an ``index.html``."""
        try:
            entries = list(self.root.iterdir())
        except OSError:
            return []
        return sorted(p.name for p in entries if (p / "index.html").is_file())

    def _resolve(self, tail: str) -> Path | None:
        root = self.root.resolve()
        candidate = (root / tail.lstrip("/")).resolve()
        if not candidate.is_relative_to(root):
            return None
        return candidate

    async def _read_chunks(self, fh: BinaryIO) -> AsyncIterator[bytes]:
        loop = asyncio.get_running_loop()
        try:
            while True:
                chunk = await loop.run_in_executor(None, fh.read, self._chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            fh.close()
