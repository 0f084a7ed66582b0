from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class ResponseCacheMiddleware(BaseHTTPMiddleware):
    """In-memory GET response cache that tags responses with hit/miss.

    Only used by tests to play the role of an upstream caching layer.
    """

    def __init__(self, app, header: str = "X-Cache"):
        super().__init__(app)
        self.header = header
        self.entries: dict[str, tuple[int, bytes, str | None]] = {}

    async def dispatch(self, request: Request, call_next):
        if request.method != "GET":
            return await call_next(request)

        key = request.url.path
        cached = self.entries.get(key)
        if cached is not None:
            status_code, body, media_type = cached
            return Response(
                content=body,
                status_code=status_code,
                media_type=media_type,
                headers={self.header: "hit"},
            )

        response = await call_next(request)
        body = b""
        async for chunk in response.body_iterator:
            body += chunk
        media_type = response.headers.get("content-type")
        self.entries[key] = (response.status_code, body, media_type)
        headers = dict(response.headers)
        headers.pop("content-length", None)
        headers[self.header] = "miss"
        return Response(
            content=body,
            status_code=response.status_code,
            headers=headers,
        )
