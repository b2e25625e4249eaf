"""Structlog setup for Threadline.

Every event is stamped with the app name and version, plus whatever the
request middleware bound (request id, client ip, dispatched event).
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

import structlog

LOG_FILE_NAME = "threadline.log"


class AppContext:
    """Processor adding ``app`` and ``version`` to every event dict."""

    def __init__(self, app: str, version: str) -> None:
        self.app = app
        self.version = version

    def __call__(self, logger, method_name: str, event_dict: dict) -> dict:
        event_dict.setdefault("app", self.app)
        event_dict.setdefault("version", self.version)
        return event_dict


def _renderer(debug: bool):
    if debug:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def _file_handler(log_dir: str, max_bytes: int, backup_count: int) -> logging.Handler | None:
    try:
        os.makedirs(log_dir, exist_ok=True)
        return RotatingFileHandler(
            os.path.join(log_dir, LOG_FILE_NAME),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    except OSError:
        # Read-only deployments log to stdout only
        return None


def setup_logging(
    debug: bool = False,
    log_dir: str = "logs",
    log_max_bytes: int = 10_000_000,
    log_backup_count: int = 5,
    app_name: str = "threadline",
    app_version: str = "",
) -> None:
    """Configure structlog and the stdlib root logger.

    Debug mode renders console lines, otherwise JSON. Output goes to stdout
    and, when ``log_dir`` is writable, to a rotating file.
    """
    log_level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            AppContext(app_name, app_version),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            _renderer(debug),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    # create_app may run more than once per process (reload, tests)
    root_logger.handlers.clear()

    handlers = [logging.StreamHandler(sys.stdout)]
    file_handler = _file_handler(log_dir, log_max_bytes, log_backup_count)
    if file_handler is not None:
        handlers.append(file_handler)
    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(handler)


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def bind_request_context(**values) -> None:
    """Reset the per-request logging context and bind ``values`` to it."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**values)


def bind_event(event: str | None) -> None:
    """Add the dispatched event name to the current request context."""
    structlog.contextvars.bind_contextvars(event=event)
