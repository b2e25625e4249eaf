"""Threadline: comment widget backend.

FastAPI entry point: one JSON endpoint at ``/`` that dispatches on the
``event`` field, per-deployment CORS negotiation, and the lifespan that opens
the storage handle.
"""

import re
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from .config import ThreadlineConfig, get_config
from .context import AppServices
from .database import Storage, close_storage, create_tables, open_storage
from .dispatcher import handle_event
from .middleware.error_handler import register_error_handlers
from .middleware.rate_limit import GatekeeperMiddleware, get_client_ip
from .middleware.request_id import RequestIDMiddleware
from .store.config_store import ConfigStore
from .utils.logging import get_logger, setup_logging
from .utils.rate_limiter import RequestThrottle

logger = get_logger("threadline.main")

_LOOPBACK_ORIGIN = re.compile(r"^https?://(localhost|127\.0\.0\.1|0\.0\.0\.0)(:\d{1,5})?$")

ALLOWED_HEADERS = (
    "X-CSRF-Token, X-Requested-With, Accept, Accept-Version, Content-Length, "
    "Content-MD5, Content-Type, Date, X-Api-Version"
)

# Pending notifications get this long to finish at shutdown
_SHUTDOWN_GRACE_SECONDS = 5.0


def allowed_origin(origin: str, config: dict) -> str:
    """Echo ``origin`` when it may call us, otherwise return ``""``.

    Loopback origins are always allowed. With ``CORS_ALLOW_ORIGIN`` set, the
    origin must equal one of its comma-separated entries (trailing slash
    ignored); without it every origin is allowed.
    """
    if _LOOPBACK_ORIGIN.match(origin):
        return origin
    allow_list = config.get("CORS_ALLOW_ORIGIN")
    if not allow_list:
        return origin
    for entry in str(allow_list).split(","):
        if entry.strip().rstrip("/") == origin:
            return origin
    return ""


def cors_headers(request: Request, config: dict) -> dict:
    origin = request.headers.get("origin")
    if not origin:
        return {}
    return {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Origin": allowed_origin(origin, config),
        "Access-Control-Allow-Methods": "POST",
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
        "Access-Control-Max-Age": "600",
    }


async def _read_event(request: Request) -> dict:
    try:
        event = await request.json()
    except ValueError:
        return {}
    return event if isinstance(event, dict) else {}


def create_app(config: ThreadlineConfig | None = None, storage: Storage | None = None) -> FastAPI:
    """Build the application.

    ``storage`` is for callers that manage the handle themselves (tests);
    otherwise the lifespan opens the process handle and creates the tables.
    """
    config = config or get_config()
    setup_logging(
        debug=config.debug,
        log_dir=config.log_dir,
        log_max_bytes=config.log_max_bytes,
        log_backup_count=config.log_backup_count,
        app_name=config.app_name,
        app_version=config.app_version,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("threadline_starting", host=config.host, port=config.port)
        owns_storage = app.state.services is None
        if owns_storage:
            handle = open_storage(config)
            await create_tables(handle, config)
            app.state.services = AppServices.create(handle, config)
        yield
        await app.state.services.background.drain(timeout=_SHUTDOWN_GRACE_SECONDS)
        if owns_storage:
            await close_storage()
            app.state.services = None
        logger.info("threadline_stopped")

    app = FastAPI(
        title=config.app_name,
        description="Comment widget backend",
        version=config.app_version,
        lifespan=lifespan,
    )
    app.state.services = AppServices.create(storage, config) if storage is not None else None
    app.state.throttle = RequestThrottle(max_requests=config.max_request_times)

    register_error_handlers(app)

    # The Gatekeeper: per-IP ceiling before anything else runs
    app.add_middleware(
        GatekeeperMiddleware, throttle=app.state.throttle, trusted_proxies=config.trusted_proxy_ips
    )

    # Request ID: added LAST so it runs FIRST
    app.add_middleware(RequestIDMiddleware, trusted_proxies=config.trusted_proxy_ips)

    @app.api_route("/", methods=["GET", "POST", "OPTIONS"])
    async def events(request: Request) -> Response:
        services: AppServices = request.app.state.services
        if request.method == "OPTIONS":
            site_config = await ConfigStore(services.storage).read()
            return Response(status_code=204, headers=cors_headers(request, site_config))

        event = await _read_event(request)
        client_ip = get_client_ip(request, config.trusted_proxy_ips)
        res, site_config = await handle_event(services, event, client_ip)
        return JSONResponse(res, headers=cors_headers(request, site_config))

    return app


def run() -> None:
    """Run the Threadline server."""
    config = get_config()
    uvicorn.run(
        "threadline.main:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )


if __name__ == "__main__":
    run()
