"""Comment notifier: routes a new comment to the configured channels.

Three channels are tried concurrently for every stored comment:

* mail to the site owner (``BLOGGER_EMAIL``) unless the owner wrote it;
* mail to the author of the replied-to comment;
* a webhook push to ``WEBHOOK_URL``.

Spam is only announced when ``NOTIFY_SPAM`` is not ``"false"``. Subjects and
bodies can be overridden per deployment with ``MAIL_SUBJECT``,
``MAIL_TEMPLATE``, ``MAIL_SUBJECT_ADMIN`` and ``MAIL_TEMPLATE_ADMIN``; they
use ``${NAME}`` placeholders.
"""

import asyncio
import html
from string import Template

from ..constants import ResCode
from ..errors import NeedLoginError
from ..services.formatting import comment_text, equals_mail
from ..utils.logging import get_logger
from .smtp import SMTPSender
from .webhook import WebhookSender

logger = get_logger("threadline.notifications.notifier")

DEFAULT_SUBJECT_ADMIN = "${SITE_NAME} has a new comment"
DEFAULT_TEMPLATE_ADMIN = (
    "<p><b>${NICK}</b> (${MAIL}) commented on "
    '<a href="${POST_URL}">${POST_URL}</a>:</p>'
    "<blockquote>${COMMENT}</blockquote>"
    "<p>IP: ${IP}</p>"
)
DEFAULT_SUBJECT = "Your comment on ${SITE_NAME} has a new reply"
DEFAULT_TEMPLATE = (
    "<p>Hi ${PARENT_NICK}, you wrote:</p>"
    "<blockquote>${PARENT_COMMENT}</blockquote>"
    "<p><b>${NICK}</b> replied:</p>"
    "<blockquote>${COMMENT}</blockquote>"
    '<p><a href="${POST_URL}">View the conversation</a></p>'
)


def _render(template: str, values: dict) -> str:
    return Template(template).safe_substitute(values)


# Already sanitized HTML; everything else is plain text
_HTML_VALUES = {"COMMENT", "PARENT_COMMENT"}


def _render_html(template: str, values: dict) -> str:
    escaped = {
        key: value if key in _HTML_VALUES else html.escape(str(value))
        for key, value in values.items()
    }
    return _render(template, escaped)


def _post_url(comment: dict, config: dict) -> str:
    href = comment.get("href") or ""
    if href.startswith("http"):
        return href
    return f"{config.get('SITE_URL', '').rstrip('/')}{href or comment.get('url', '')}"


class CommentNotifier:
    def __init__(self, smtp: SMTPSender | None = None, webhook: WebhookSender | None = None) -> None:
        self._smtp = smtp or SMTPSender()
        self._webhook = webhook or WebhookSender()

    async def notify(self, comment: dict, config: dict, get_parent) -> None:
        """Send every notification ``comment`` warrants.

        ``get_parent`` is an async callable returning the record the comment
        replies to, or None. Channel failures are logged, never raised.
        """
        if comment.get("isSpam") and str(config.get("NOTIFY_SPAM", "")).lower() == "false":
            logger.info("notify_skipped_spam", id=comment.get("_id"))
            return

        results = await asyncio.gather(
            self._notify_owner(comment, config),
            self._notify_reply(comment, config, get_parent),
            self._notify_webhook(comment, config),
            return_exceptions=True,
        )
        for channel, result in zip(("owner_mail", "reply_mail", "webhook"), results):
            if isinstance(result, Exception):
                logger.error("notify_channel_error", channel=channel, error=str(result))

    def _values(self, comment: dict, config: dict, parent: dict | None = None) -> dict:
        values = {
            "SITE_NAME": config.get("SITE_NAME", ""),
            "SITE_URL": config.get("SITE_URL", ""),
            "NICK": comment.get("nick", ""),
            "MAIL": comment.get("mail", ""),
            "IP": comment.get("ip", ""),
            "COMMENT": comment.get("comment", ""),
            "POST_URL": _post_url(comment, config),
        }
        if parent:
            values["PARENT_NICK"] = parent.get("nick", "")
            values["PARENT_COMMENT"] = parent.get("comment", "")
        return values

    async def _notify_owner(self, comment: dict, config: dict) -> bool:
        owner = config.get("BLOGGER_EMAIL")
        if not owner or not config.get("SMTP_HOST"):
            return False
        if equals_mail(comment.get("mail"), owner):
            return False
        values = self._values(comment, config)
        return await self._smtp.send(
            config,
            _render(config.get("MAIL_SUBJECT_ADMIN") or DEFAULT_SUBJECT_ADMIN, values),
            _render_html(config.get("MAIL_TEMPLATE_ADMIN") or DEFAULT_TEMPLATE_ADMIN, values),
            owner,
        )

    async def _notify_reply(self, comment: dict, config: dict, get_parent) -> bool:
        if not comment.get("pid") or not config.get("SMTP_HOST"):
            return False
        parent = await get_parent(comment)
        if not parent or not parent.get("mail"):
            return False
        # Self replies and replies to the owner (already mailed) are skipped
        if equals_mail(parent["mail"], comment.get("mail")):
            return False
        if equals_mail(parent["mail"], config.get("BLOGGER_EMAIL")):
            return False
        values = self._values(comment, config, parent)
        return await self._smtp.send(
            config,
            _render(config.get("MAIL_SUBJECT") or DEFAULT_SUBJECT, values),
            _render_html(config.get("MAIL_TEMPLATE") or DEFAULT_TEMPLATE, values),
            parent["mail"],
        )

    async def _notify_webhook(self, comment: dict, config: dict) -> bool:
        url = config.get("WEBHOOK_URL")
        if not url:
            return False
        if equals_mail(comment.get("mail"), config.get("BLOGGER_EMAIL")):
            return False
        payload = {
            "site_name": config.get("SITE_NAME", ""),
            "id": comment.get("_id"),
            "nick": comment.get("nick", ""),
            "comment": comment_text(comment.get("comment")),
            "href": _post_url(comment, config),
            "is_spam": bool(comment.get("isSpam")),
        }
        return await self._webhook.send(url, payload)

    async def send_test(self, mail: str | None, config: dict, caller_is_admin: bool) -> dict:
        """Send a test mail to ``mail`` with the stored SMTP settings."""
        if not caller_is_admin:
            raise NeedLoginError()
        site = config.get("SITE_NAME") or "Comments"
        try:
            result = await self._smtp.send(
                config,
                f"{site} mail notification test",
                "<p>If you can read this, mail notifications are configured correctly.</p>",
                mail or "",
                raise_errors=True,
            )
        except Exception as exc:
            return {"code": ResCode.SUCCESS, "message": str(exc)}
        return {"code": ResCode.SUCCESS, "result": result}
