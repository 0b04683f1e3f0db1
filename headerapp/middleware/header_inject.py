# headerapp/middleware/header_inject.py
# Applies per-site configured headers to outgoing responses.
# - Site comes from request.state.site (SiteMiddleware), else the Host name.
# - Headers are set with overwrite semantics; the last value wins.
# - Resolution failures are logged and never break the response.

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional, Tuple

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from headerapp.engine import HeaderResolutionEngine
from headerapp.middleware.site import DEFAULT_SITE_HEADER, SiteMiddleware, site_from_request
from headerapp.telemetry.logging import bind

_log = logging.getLogger(__name__)

EngineProvider = Callable[[], HeaderResolutionEngine]


def _request_uri(request: Request) -> str:
    # Undecoded path as sent by the client; the engine does the decoding.
    raw = request.scope.get("raw_path")
    if isinstance(raw, (bytes, bytearray)) and raw:
        return raw.decode("latin-1").split("?", 1)[0]
    return request.url.path


def _excluded(path: str, prefixes: Tuple[str, ...]) -> bool:
    return any(path == p or path.startswith(p.rstrip("/") + "/") for p in prefixes)


class HeaderInjectMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        *,
        engine: EngineProvider,
        exclude_paths: Iterable[str] = (),
        site_header: str = DEFAULT_SITE_HEADER,
    ) -> None:
        super().__init__(app)
        self._engine = engine
        self._exclude = tuple(p for p in exclude_paths if p)
        self._site_header = site_header

    def _site(self, request: Request) -> Optional[str]:
        site = getattr(request.state, "site", None)
        if site:
            return str(site)
        return site_from_request(request, self._site_header)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)

        path = request.url.path
        if _excluded(path, self._exclude):
            return response

        site = self._site(request)
        try:
            headers = self._engine().resolve_headers(_request_uri(request), site)
        except Exception as exc:
            # nosec B110 - header injection must never break the primary response
            bind(_log, site=site, path=path).warning("header resolution failed: %s", exc)
            return response

        if headers:
            for name, value in headers.items():
                response.headers[name] = value
        return response


def install_header_injection(
    app: FastAPI,
    engine: EngineProvider,
    *,
    exclude_paths: Iterable[str] = (),
    site_header: str = DEFAULT_SITE_HEADER,
) -> None:
    """
    Install site detection and header injection.

    Starlette runs the last added middleware first, so SiteMiddleware is added
    after HeaderInjectMiddleware to populate request.state.site before it.
    """
    app.add_middleware(
        HeaderInjectMiddleware,
        engine=engine,
        exclude_paths=tuple(exclude_paths),
        site_header=site_header,
    )
    app.add_middleware(SiteMiddleware, header=site_header)
