"""Request ID middleware: correlation ids in headers and log context."""

import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..utils.logging import bind_request_context
from .rate_limit import get_client_ip


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a request ID and binds it, with the client IP, for logging."""

    def __init__(self, app, trusted_proxies: frozenset[str] = frozenset()) -> None:
        super().__init__(app)
        self.trusted_proxies = trusted_proxies

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        bind_request_context(request_id=request_id, ip=get_client_ip(request, self.trusted_proxies))

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
