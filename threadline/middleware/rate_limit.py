"""The Gatekeeper: per-IP request guard in front of the event endpoint."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..constants import ResCode
from ..utils.logging import get_logger
from ..utils.rate_limiter import RequestThrottle

logger = get_logger("threadline.middleware.rate_limit")


def get_client_ip(request: Request, trusted_proxies: frozenset[str] = frozenset()) -> str:
    """Peer address, or the first X-Forwarded-For hop when the peer is a trusted proxy."""
    peer = request.client.host if request.client else "unknown"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and peer in trusted_proxies:
        return forwarded.split(",")[0].strip() or peer
    return peer


class GatekeeperMiddleware(BaseHTTPMiddleware):
    """Counts every request per IP and rejects IPs over the process ceiling.

    Rejection happens before the request body is read or storage touched.
    """

    def __init__(
        self, app, throttle: RequestThrottle, trusted_proxies: frozenset[str] = frozenset()
    ) -> None:
        super().__init__(app)
        self.throttle = throttle
        self.trusted_proxies = trusted_proxies

    async def dispatch(self, request: Request, call_next) -> Response:
        client_ip = get_client_ip(request, self.trusted_proxies)
        count = self.throttle.hit(client_ip)

        if self.throttle.is_blocked(client_ip):
            logger.warning("request_ceiling_exceeded", ip=client_ip, count=count)
            return JSONResponse(
                status_code=429,
                content={"code": int(ResCode.FAIL), "message": "Too Many Requests"},
                headers={"X-RateLimit-Remaining": "0"},
            )
        logger.debug("request_counted", ip=client_ip, count=count)

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(self.throttle.remaining(client_ip))
        return response
