"""Response transformer — appends a payload to streamed HTML bodies.

The body is never materialised: :func:`append_tail` forwards every chunk
of the inner stream unchanged and, once that stream is exhausted, yields
one extra chunk with the payload.  Responses that are not HTML keep
their original body object, untouched.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable

from aiohttp import hdrs, web

HTML_CONTENT_TYPE = "text/html"

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


async def append_tail(chunks: AsyncIterator[bytes], tail: bytes) -> AsyncIterator[bytes]:
    """Yield every chunk of ``chunks``, then ``tail``."""
    try:
        async for chunk in chunks:
            yield chunk
    finally:
        await _aclose(chunks)
    yield tail


async def _aclose(chunks: AsyncIterator[bytes]) -> None:
    aclose = getattr(chunks, "aclose", None)
    if aclose is not None:
        await aclose()


def transform_body(
    chunks: AsyncIterator[bytes], content_type: str, tail: bytes
) -> AsyncIterator[bytes]:
    """Decorate ``chunks`` with ``tail`` if ``content_type`` is HTML."""
    if content_type.split(";", 1)[0].strip().lower() != HTML_CONTENT_TYPE:
        return chunks
    return append_tail(chunks, tail)


class ChunkedResponse(web.StreamResponse):
    """A response whose body is a lazy, finite stream of byte chunks.

    Sent with chunked transfer encoding; no ``Content-Length`` is set
    because decorators may lengthen the body.
    """

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        *,
        status: int = 200,
        reason: str | None = None,
        headers: dict[str, str] | None = None,
        content_type: str = "application/octet-stream",
        charset: str | None = None,
    ) -> None:
        super().__init__(status=status, reason=reason, headers=headers)
        self.content_type = content_type
        if charset is not None:
            self.charset = charset
        self.body_chunks = chunks

    async def prepare(self, request: web.BaseRequest):
        if self.prepared:
            return await super().prepare(request)
        writer = await super().prepare(request)
        try:
            if request.method != hdrs.METH_HEAD:
                async for chunk in self.body_chunks:
                    await self.write(chunk)
        finally:
            await _aclose(self.body_chunks)
        await self.write_eof()
        return writer


def payload_injector(payload: bytes | str) -> Callable:
    """Middleware appending ``payload`` to every streamed HTML response."""
    tail = payload.encode("utf-8") if isinstance(payload, str) else payload

    @web.middleware
    async def inject(request: web.Request, handler: Handler) -> web.StreamResponse:
        response = await handler(request)
        if isinstance(response, ChunkedResponse):
            response.body_chunks = transform_body(
                response.body_chunks, response.content_type, tail
            )
        return response

    return inject
