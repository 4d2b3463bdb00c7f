"""
Per-request context for log correlation.

WHAT: Gives every HTTP request an ID, exposes it through a ContextVar and
echoes it back as the ``X-Request-ID`` response header.

WHY: A single proposal editing session produces many small requests
(edit item, switch discount mode, preview). Prefixing log lines with the
request ID lets one follow a single change from the API through the
recomputation to the database write. A client-supplied ``X-Request-ID`` is
reused so browser and server logs share the same key.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@dataclass
class RequestContext:
    request_id: str
    client_ip: str
    path: str
    method: str


_request_context: ContextVar[Optional[RequestContext]] = ContextVar(
    "request_context", default=None
)


def get_request_context() -> Optional[RequestContext]:
    """The context of the request being handled, or None outside a request."""
    return _request_context.get()


def get_client_ip(request: Request) -> str:
    # Behind a proxy the left-most X-Forwarded-For entry is the caller
    forwarded = request.headers.get("X-Forwarded-For", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Sets ``request.state.context`` and the context variable for the
    duration of one request, then logs the outcome at DEBUG.

    Services read the context with ``get_request_context()``; they never
    receive the Request object.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        context = RequestContext(
            request_id=request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4()),
            client_ip=get_client_ip(request),
            path=request.url.path,
            method=request.method,
        )
        request.state.context = context
        token = _request_context.set(context)
        started = time.perf_counter()

        try:
            response = await call_next(request)
        finally:
            _request_context.reset(token)

        response.headers[REQUEST_ID_HEADER] = context.request_id
        logger.debug(
            f"[{context.request_id}] {context.method} {context.path} "
            f"{response.status_code} {(time.perf_counter() - started) * 1000:.1f}ms"
        )
        return response
