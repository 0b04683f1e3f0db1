from __future__ import annotations

from typing import Awaitable, Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

DEFAULT_SITE_HEADER = "X-Site-ID"


def site_from_request(request: Request, header: str = DEFAULT_SITE_HEADER) -> Optional[str]:
    explicit = (request.headers.get(header) or "").strip()
    if explicit:
        return explicit
    host = request.url.hostname
    return host.lower() if host else None


class SiteMiddleware(BaseHTTPMiddleware):
    """Identify the site a request targets and expose it as ``request.state.site``."""

    def __init__(self, app: ASGIApp, *, header: str = DEFAULT_SITE_HEADER) -> None:
        super().__init__(app)
        self._header = header

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request.state.site = site_from_request(request, self._header)
        return await call_next(request)
