"""Event dispatcher: maps the ``event`` field of a request to its handler.

Every request is one JSON object ``{"event": NAME, "accessToken": ..., ...}``.
``handle_event`` resolves the caller's identity, reads the deployment config,
runs the handler and folds any error into the response envelope.
"""

import asyncio
import xml.etree.ElementTree as ET
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from .constants import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_RECENT_PAGE_SIZE,
    MAX_RECENT_PAGE_SIZE,
    ResCode,
)
from .context import AppServices, RequestContext
from .errors import NeedLoginError, ThreadlineError, ValidationError, validate
from .services import formatting, identity
from .services.importers import parse_export
from .services.submission import submit_comment
from .services.uploads import upload_image
from .store.config_store import ConfigStore
from .utils.logging import bind_event, get_logger

logger = get_logger("threadline.dispatcher")


def _require_admin(ctx: RequestContext) -> None:
    if not ctx.is_admin:
        raise NeedLoginError()


def _int(value, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid parameter "{name}"') from None


def _page_size(config: dict) -> int:
    try:
        return int(config.get("COMMENT_PAGE_SIZE")) or DEFAULT_PAGE_SIZE
    except (TypeError, ValueError):
        return DEFAULT_PAGE_SIZE


# --- comments ---

async def comment_get(ctx: RequestContext, event: dict) -> dict:
    try:
        validate(event, ["url"])
        before = event.get("before")
        page = await ctx.comments.get_page(
            url=event["url"],
            uid=ctx.uid,
            is_admin=ctx.is_admin,
            before=_int(before, "before") if before else None,
            limit=_page_size(ctx.config),
            include_top=not ctx.config.get("TOP_DISABLED"),
        )
    except ThreadlineError as exc:
        return {"data": [], "message": exc.message}
    return {
        "data": formatting.comment_tree(page.comments, ctx.uid, ctx.config),
        "more": page.more,
        "count": page.count,
    }


async def comment_get_for_admin(ctx: RequestContext, event: dict) -> dict:
    _require_admin(ctx)
    validate(event, ["per", "page"])
    count, data = await ctx.comments.get_for_admin(
        per=_int(event["per"], "per"),
        page=_int(event["page"], "page"),
        spam_filter=event.get("type"),
        keyword=event.get("keyword"),
    )
    return {"code": ResCode.SUCCESS, "count": count, "data": data}


async def comment_set_for_admin(ctx: RequestContext, event: dict) -> dict:
    _require_admin(ctx)
    validate(event, ["id", "set"])
    if not isinstance(event["set"], dict):
        raise ValidationError('Invalid parameter "set"')
    await ctx.comments.set_fields(str(event["id"]), event["set"])
    return {"code": ResCode.SUCCESS}


async def comment_delete_for_admin(ctx: RequestContext, event: dict) -> dict:
    _require_admin(ctx)
    validate(event, ["id"])
    await ctx.comments.delete(str(event["id"]))
    return {"code": ResCode.SUCCESS}


async def comment_import_for_admin(ctx: RequestContext, event: dict) -> dict:
    _require_admin(ctx)
    lines = []

    def log(message: str) -> None:
        lines.append(f"{datetime.now():%Y-%m-%d %H:%M:%S} {message}")

    try:
        validate(event, ["source", "file"])
        log(f"Importing from {event['source']}")
        records = parse_export(event["source"], str(event["file"]), log)
        saved = 0
        for record in records:
            try:
                await ctx.comments.save(record)
                saved += 1
            except SQLAlchemyError as exc:
                log(f"{record.get('_id')} not saved: {exc.__class__.__name__}")
        log(f"Imported {saved} of {len(records)} comments")
    except (ThreadlineError, ValueError, ET.ParseError) as exc:
        log(str(exc))

    text = "\n".join(lines) + "\n"
    logger.info("comments_imported", source=event.get("source"), log=text)
    return {"code": ResCode.SUCCESS, "log": text}


async def comment_export_for_admin(ctx: RequestContext, event: dict) -> dict:
    _require_admin(ctx)
    return {"code": ResCode.SUCCESS, "data": await ctx.comments.export()}


async def comment_like(ctx: RequestContext, event: dict) -> dict:
    validate(event, ["id"])
    await ctx.comments.toggle_like(str(event["id"]), ctx.uid)
    return {}


async def comment_submit(ctx: RequestContext, event: dict) -> dict:
    return await submit_comment(ctx, event)


# --- counters and widgets ---

async def counter_get(ctx: RequestContext, event: dict) -> dict:
    try:
        validate(event, ["url"])
        time = await ctx.counter.increment(event["url"], event.get("title"))
    except ThreadlineError as exc:
        return {"message": exc.message}
    return {"time": time}


async def get_comments_count(ctx: RequestContext, event: dict) -> dict:
    try:
        validate(event, ["urls"])
        urls = event["urls"]
        if not isinstance(urls, list):
            raise ValidationError('Invalid parameter "urls"')
        include_reply = bool(event.get("includeReply"))
        counts = await asyncio.gather(
            *(ctx.comments.count_by_url(url, include_reply) for url in urls)
        )
    except ThreadlineError as exc:
        return {"message": exc.message}
    return {"data": [{"url": url, "count": count} for url, count in zip(urls, counts)]}


async def get_recent_comments(ctx: RequestContext, event: dict) -> dict:
    try:
        page_size = _int(event.get("pageSize") or DEFAULT_RECENT_PAGE_SIZE, "pageSize")
        urls = event.get("urls") or []
        if not isinstance(urls, list):
            raise ValidationError('Invalid parameter "urls"')
        records = await ctx.comments.recent(
            urls=urls,
            include_reply=bool(event.get("includeReply")),
            limit=max(1, min(page_size, MAX_RECENT_PAGE_SIZE)),
        )
    except ThreadlineError as exc:
        return {"message": exc.message}
    return {"data": [formatting.recent_view(record, ctx.config) for record in records]}


# --- config and identity ---

async def set_config(ctx: RequestContext, event: dict) -> dict:
    _require_admin(ctx)
    new_config = event.get("config") or {}
    if not isinstance(new_config, dict):
        raise ValidationError('Invalid parameter "config"')
    await ctx.config_store.write(new_config)
    return {"code": ResCode.SUCCESS}


async def get_config(ctx: RequestContext, event: dict) -> dict:
    return formatting.public_config(ctx.config, __version__, ctx.is_admin)


async def get_config_for_admin(ctx: RequestContext, event: dict) -> dict:
    _require_admin(ctx)
    return formatting.admin_config(ctx.config)


async def login(ctx: RequestContext, event: dict) -> dict:
    return identity.login(event.get("password"), ctx.config)


async def set_password(ctx: RequestContext, event: dict) -> dict:
    return await identity.set_password(
        event.get("password"), ctx.config, ctx.is_admin, ctx.config_store
    )


async def get_password_status(ctx: RequestContext, event: dict) -> dict:
    return identity.password_status(ctx.config, __version__)


async def get_func_version(ctx: RequestContext, event: dict) -> dict:
    return {"code": ResCode.SUCCESS, "version": __version__}


async def email_test(ctx: RequestContext, event: dict) -> dict:
    return await ctx.services.notifier.send_test(event.get("mail"), ctx.config, ctx.is_admin)


async def upload_image_handler(ctx: RequestContext, event: dict) -> dict:
    return await upload_image(event, ctx.config, ctx.settings)


HANDLERS = {
    "GET_FUNC_VERSION": get_func_version,
    "COMMENT_GET": comment_get,
    "COMMENT_GET_FOR_ADMIN": comment_get_for_admin,
    "COMMENT_SET_FOR_ADMIN": comment_set_for_admin,
    "COMMENT_DELETE_FOR_ADMIN": comment_delete_for_admin,
    "COMMENT_IMPORT_FOR_ADMIN": comment_import_for_admin,
    "COMMENT_EXPORT_FOR_ADMIN": comment_export_for_admin,
    "COMMENT_LIKE": comment_like,
    "COMMENT_SUBMIT": comment_submit,
    "COUNTER_GET": counter_get,
    "GET_COMMENTS_COUNT": get_comments_count,
    "GET_RECENT_COMMENTS": get_recent_comments,
    "GET_PASSWORD_STATUS": get_password_status,
    "SET_PASSWORD": set_password,
    "GET_CONFIG": get_config,
    "GET_CONFIG_FOR_ADMIN": get_config_for_admin,
    "SET_CONFIG": set_config,
    "LOGIN": login,
    "EMAIL_TEST": email_test,
    "UPLOAD_IMAGE": upload_image_handler,
}


async def dispatch(ctx: RequestContext, event: dict) -> dict:
    name = event.get("event")
    handler = HANDLERS.get(name) if name else None
    if handler is not None:
        return await handler(ctx, event)
    if name:
        return {
            "code": ResCode.EVENT_NOT_EXIST,
            "message": "Unknown event, please upgrade the comment backend",
        }
    return {
        "code": ResCode.NO_PARAM,
        "message": "The comment backend is running; configure the widget to use it",
        "version": __version__,
    }


async def handle_event(services: AppServices, event: dict, ip: str) -> tuple[dict, dict]:
    """Run one request and return ``(response, config)``.

    The config map is handed back for CORS negotiation; it is ``{}`` when
    reading it failed. Domain errors become ``{code, message}``; anything
    else is logged with its stack and answered with ``FAIL``.
    """
    bind_event(event.get("event"))
    access_token = identity.anonymous_sign_in(event)
    config: dict = {}
    try:
        config = await ConfigStore(services.storage).read()
        ctx = RequestContext(
            services=services,
            config=config,
            access_token=access_token,
            ip=ip,
            is_admin=identity.is_admin(access_token, config),
        )
        res = await dispatch(ctx, event)
    except ThreadlineError as exc:
        logger.warning("request_rejected", code=int(exc.code), message=exc.message)
        res = {"code": exc.code, "message": exc.message}
    except Exception as exc:
        logger.exception("request_failed", params=sorted(event))
        res = {"code": ResCode.FAIL, "message": str(exc)}

    if not res.get("code") and not event.get("accessToken"):
        res["accessToken"] = access_token
    return res, config
