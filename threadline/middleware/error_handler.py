"""Error handlers: requests that never reach the dispatcher still get an envelope."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..constants import ResCode
from ..utils.logging import get_logger

logger = get_logger("threadline.middleware.error_handler")


def register_error_handlers(app: FastAPI) -> None:
    """Register envelope-shaped handlers on the app."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": int(ResCode.FAIL), "message": str(exc.detail)},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        request_id = getattr(request.state, "request_id", None)
        logger.error(
            "unhandled_exception",
            error=str(exc),
            request_id=request_id,
            path=str(request.url.path),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"code": int(ResCode.FAIL), "message": "Internal server error"},
        )
