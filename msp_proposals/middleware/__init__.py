"""
Middleware package.

WHY: Middleware provides cross-cutting concerns (request IDs, timing) that
apply to all requests.
"""

from msp_proposals.middleware.request_context import (
    RequestContextMiddleware,
    get_request_context,
    get_client_ip,
    RequestContext,
)

__all__ = [
    "RequestContextMiddleware",
    "get_request_context",
    "get_client_ip",
    "RequestContext",
]
