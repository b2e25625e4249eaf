"""Comment submission pipeline.

validate -> rate limit -> bot challenge -> build record -> persist -> reply,
with spam classification and notifications handed to a background task that
the request waits on for at most ``post_submit_timeout`` seconds.
"""

import asyncio

from ..constants import ANONYMOUS_NICK
from ..errors import OwnerIdentityError, ValidationError, validate
from ..store.comments import new_comment_id
from ..utils.clock import now_ms
from ..utils.logging import get_logger
from .captcha import captcha_enabled, verify_captcha
from .formatting import equals_mail, mail_hash, sanitize_comment
from .limiter import check_submit_rate
from .spam import pre_check_spam

logger = get_logger("threadline.services.submission")


async def build_record(ctx, event: dict) -> dict:
    """Turn a submission event into a storable record."""
    mail = str(event.get("mail") or "")
    is_owner_mail = equals_mail(mail, ctx.config.get("BLOGGER_EMAIL"))
    if is_owner_mail and not ctx.is_admin:
        raise OwnerIdentityError("Log in to the admin panel before commenting as the site owner")

    rid = str(event.get("rid") or "")
    pid = str(event.get("pid") or rid)
    if rid:
        root = await ctx.comments.get(rid)
        if root is None or root.get("rid"):
            raise ValidationError('Invalid parameter "rid"')
        if pid != rid:
            parent = await ctx.comments.get(pid)
            # A parent other than the root must be a reply in the same thread
            if parent is None or parent.get("rid") != rid:
                raise ValidationError('Invalid parameter "pid"')

    timestamp = now_ms()
    return {
        "_id": new_comment_id(),
        "uid": ctx.uid,
        "nick": event.get("nick") or ANONYMOUS_NICK,
        "mail": mail,
        "mailMd5": mail_hash(mail, ctx.config),
        "link": event.get("link") or "",
        "ua": event.get("ua"),
        "ip": ctx.ip,
        "master": is_owner_mail,
        "url": event.get("url"),
        "href": event.get("href") or "",
        "comment": sanitize_comment(event.get("comment")),
        "pid": pid,
        "rid": rid,
        "isSpam": False if ctx.is_admin else pre_check_spam(event, ctx.config),
        "created": timestamp,
        "updated": timestamp,
        "like": [],
        "top": False,
    }


async def post_submit(services, comments, comment: dict, config: dict) -> None:
    """Classify ``comment`` remotely, then send its notifications.

    The stored spam flag is only rewritten when the classifier gives a
    verdict that differs from the pre-check.
    """
    verdict = await services.classifier.classify(comment, config)
    if verdict is not None and verdict != bool(comment.get("isSpam")):
        await comments.update_is_spam(comment["_id"], verdict)
        comment["isSpam"] = verdict
        logger.info("comment_reclassified", id=comment["_id"], is_spam=verdict)

    async def get_parent(current: dict):
        return await comments.get(current["pid"])

    await services.notifier.notify(comment, config, get_parent)


async def _post_submit_logged(services, comments, comment: dict, config: dict) -> None:
    try:
        await post_submit(services, comments, comment, config)
    except Exception:
        logger.exception("post_submit_failed", id=comment.get("_id"), url=comment.get("url"))


async def submit_comment(ctx, event: dict) -> dict:
    validate(event, ["url", "ua", "comment"])
    await check_submit_rate(ctx.comments, ctx.config, ctx.ip)
    if captcha_enabled(ctx.config):
        await verify_captcha(
            event.get("turnstileToken"),
            ctx.ip,
            ctx.config["TURNSTILE_SECRET_KEY"],
            timeout=ctx.settings.http_timeout,
        )

    comments = ctx.comments
    comment = await comments.save(await build_record(ctx, event))

    task = ctx.services.background.spawn(
        _post_submit_logged(ctx.services, comments, comment, dict(ctx.config)),
        name=f"post_submit:{comment['_id']}",
    )
    # The timeout only ends the wait; the task keeps running
    done, _ = await asyncio.wait({task}, timeout=ctx.settings.post_submit_timeout)
    if not done:
        logger.info("post_submit_still_running", id=comment["_id"])
    return {"id": comment["_id"]}
