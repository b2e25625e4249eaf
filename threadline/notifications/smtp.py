"""SMTP mail sender for comment notifications."""

import asyncio
import smtplib
from email.header import Header
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from ..utils.logging import get_logger

logger = get_logger("threadline.notifications.smtp")

_EMAIL_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<style>
body {{ margin: 0; padding: 0; background-color: #f6f8fa; color: #24292f; font-family: -apple-system, 'Segoe UI', sans-serif; }}
.container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
.header {{ background-color: #ffffff; border: 1px solid #d0d7de; border-bottom: 2px solid #0969da; padding: 16px 20px; }}
.header h1 {{ margin: 0; font-size: 16px; color: #0969da; }}
.body-content {{ background-color: #ffffff; border: 1px solid #d0d7de; border-top: none; padding: 20px; line-height: 1.6; }}
.footer {{ padding: 12px; text-align: center; font-size: 11px; color: #6e7781; }}
</style>
</head>
<body>
<div class="container">
    <div class="header"><h1>{site_name}</h1></div>
    <div class="body-content">{body}</div>
    <div class="footer">Automated notification from {site_name}. Do not reply.</div>
</div>
</body>
</html>"""


def smtp_settings(config: dict) -> dict:
    """Pick the SMTP settings out of the deployment config map."""
    secure = str(config.get("SMTP_SECURE", "")).lower() in ("true", "1")
    try:
        port = int(config.get("SMTP_PORT") or (465 if secure else 587))
    except (TypeError, ValueError):
        port = 587
    username = config.get("SMTP_USER") or ""
    return {
        "host": config.get("SMTP_HOST") or "",
        "port": port,
        "secure": secure,
        "username": username,
        "password": config.get("SMTP_PASS") or "",
        "from_addr": config.get("SENDER_EMAIL") or username,
        "from_name": config.get("SENDER_NAME") or config.get("SITE_NAME") or "",
    }


class SMTPSender:
    """Sends HTML mail via SMTP.

    The blocking SMTP conversation runs in a thread executor so the event
    loop keeps serving requests.
    """

    async def send(
        self,
        config: dict,
        subject: str,
        body_html: str,
        to: str,
        raise_errors: bool = False,
    ) -> bool:
        """Send one mail with the settings in ``config``.

        Returns True on success. Failures are logged and reported as False,
        or re-raised when ``raise_errors`` is set (used by the mail test).
        """
        settings = smtp_settings(config)
        if not settings["host"] or not to:
            logger.error("smtp_missing_config", host=settings["host"], to=to)
            if raise_errors:
                raise ValueError("SMTP host or recipient is not configured")
            return False

        full_html = _EMAIL_TEMPLATE.format(
            site_name=config.get("SITE_NAME") or "Comments", body=body_html
        )

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_sync, settings, to, subject, full_html)
        except Exception as exc:
            logger.error("smtp_send_error", to=to, error=str(exc))
            if raise_errors:
                raise
            return False
        logger.info("smtp_email_sent", to=to, subject=subject)
        return True

    @staticmethod
    def _send_sync(settings: dict, to: str, subject: str, html_body: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = str(Header(subject, "utf-8"))
        msg["From"] = formataddr((settings["from_name"], settings["from_addr"]))
        msg["To"] = to
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        if settings["secure"]:
            server = smtplib.SMTP_SSL(settings["host"], settings["port"], timeout=30)
        else:
            server = smtplib.SMTP(settings["host"], settings["port"], timeout=30)
        with server:
            server.ehlo()
            if not settings["secure"] and settings["port"] != 25:
                server.starttls()
                server.ehlo()
            if settings["username"] and settings["password"]:
                server.login(settings["username"], settings["password"])
            server.sendmail(settings["from_addr"], [to], msg.as_string())
