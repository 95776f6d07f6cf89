"""Tests for the response transformer — streaming tail injection."""

from __future__ import annotations

import asyncio

from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from doclive.server.transformer import (
    ChunkedResponse,
    append_tail,
    payload_injector,
    transform_body,
)

TAIL = b"<script>reload()</script>"


async def _chunks(*parts: bytes):
    for part in parts:
        yield part


async def _collect(stream) -> list[bytes]:
    return [chunk async for chunk in stream]


class TestAppendTail:
    def test_chunks_forwarded_then_one_tail(self):
        parts = [b"<html>", b"<body>", b"hi", b"</body></html>"]
        result = asyncio.run(_collect(append_tail(_chunks(*parts), TAIL)))
        assert result == [*parts, TAIL]

    def test_empty_body_gets_only_the_tail(self):
        assert asyncio.run(_collect(append_tail(_chunks(), TAIL))) == [TAIL]

    def test_body_is_consumed_lazily(self):
        pulled: list[int] = []

        async def producer():
            for i in range(3):
                pulled.append(i)
                yield str(i).encode()

        async def scenario():
            stream = append_tail(producer(), TAIL)
            first = await stream.__anext__()
            assert first == b"0"
            assert pulled == [0]
            await stream.aclose()

        asyncio.run(scenario())


class TestTransformBody:
    def test_html_is_decorated(self):
        stream = transform_body(_chunks(b"a", b"b"), "text/html", TAIL)
        assert asyncio.run(_collect(stream)) == [b"a", b"b", TAIL]

    def test_html_with_parameters_is_decorated(self):
        stream = transform_body(_chunks(b"a"), "Text/HTML; charset=utf-8", TAIL)
        assert asyncio.run(_collect(stream)) == [b"a", TAIL]

    def test_non_html_passes_through_untouched(self):
        original = _chunks(b"body { }")
        assert transform_body(original, "text/css", TAIL) is original
        assert asyncio.run(_collect(original)) == [b"body { }"]


def _app(content_type: str, parts: list[bytes]) -> web.Application:
    async def handler(request: web.Request) -> web.StreamResponse:
        return ChunkedResponse(_chunks(*parts), content_type=content_type)

    app = web.Application(middlewares=[payload_injector(TAIL)])
    app.router.add_get("/", handler)
    return app


async def _fetch(app: web.Application, method: str = "GET"):
    async with TestClient(TestServer(app)) as client:
        response = await client.request(method, "/")
        return response.status, await response.read(), response.headers


class TestPayloadInjector:
    def test_html_response_gets_tail(self):
        status, body, headers = asyncio.run(_fetch(_app("text/html", [b"<p>", b"x</p>"])))
        assert status == 200
        assert body == b"<p>x</p>" + TAIL
        assert headers["Content-Type"].startswith("text/html")

    def test_other_response_is_unchanged(self):
        status, body, _ = asyncio.run(_fetch(_app("application/json", [b"{}", b"\n"])))
        assert status == 200
        assert body == b"{}\n"

    def test_str_payload_is_encoded(self):
        async def handler(request: web.Request) -> web.StreamResponse:
            return ChunkedResponse(_chunks(b"<p>"), content_type="text/html")

        app = web.Application(middlewares=[payload_injector("<i>é</i>")])
        app.router.add_get("/", handler)
        _, body, _ = asyncio.run(_fetch(app))
        assert body == b"<p>" + "<i>é</i>".encode("utf-8")

    def test_head_request_has_no_body(self):
        status, body, _ = asyncio.run(_fetch(_app("text/html", [b"<p>"]), method="HEAD"))
        assert status == 200
        assert body == b""
