"""HTTP middleware for request correlation and CORS origin filtering.

- ``request_id_middleware`` tags every request/response pair with a
  correlation id and the handling duration.
- ``OriginMatcherCORSMiddleware`` is Starlette's CORS middleware with the
  origin decision delegated to an ``OriginMatcher``.
"""

from __future__ import annotations

import time
import uuid
from typing import Any

from fastapi import Request, Response
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp

from kvdb.core.logging import clear_request_id, set_request_id
from kvdb.core.origins import OriginMatcher


async def request_id_middleware(request: Request, call_next) -> Response:
    """Propagate or generate a request id and report request duration.

    The incoming header (``LOG_REQUEST_ID_HEADER``, default ``X-Request-ID``)
    is reused when present; otherwise a UUID4 is generated. The id is kept in
    a context variable for log correlation for the lifetime of the request.
    """

    header_name = request.app.state.settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


class OriginMatcherCORSMiddleware(CORSMiddleware):
    """CORS middleware that consults an ``OriginMatcher`` for each origin.

    Requests from disallowed origins are still served; they simply receive
    no ``Access-Control-Allow-Origin`` header, so browsers block the response
    while non-browser clients are unaffected.
    """

    def __init__(self, app: ASGIApp, *, matcher: OriginMatcher, **kwargs: Any) -> None:
        allow_origins = ["*"] if matcher.allows_all else []
        super().__init__(app, allow_origins=allow_origins, **kwargs)
        self.matcher = matcher

    def is_allowed_origin(self, origin: str) -> bool:
        return self.matcher.is_allowed(origin)
