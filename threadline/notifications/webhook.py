"""Webhook sender for instant-message pushes (generic, Slack, Discord)."""

import httpx

from ..utils.logging import get_logger

logger = get_logger("threadline.notifications.webhook")


class WebhookSender:
    """Posts a new-comment summary to a webhook URL.

    Slack and Discord URLs get their platform's message shape; any other URL
    receives the raw payload with the summary under ``text``.
    """

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout

    async def send(self, url: str, payload: dict, headers: dict | None = None) -> bool:
        send_headers = {"Content-Type": "application/json"}
        if headers:
            send_headers.update(headers)

        body = self._format_payload(url, payload)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=body, headers=send_headers)
                response.raise_for_status()
                logger.info("webhook_sent", url=url, status=response.status_code)
                return True
        except httpx.HTTPStatusError as exc:
            logger.error(
                "webhook_http_error",
                url=url,
                status=exc.response.status_code,
                body=exc.response.text[:500],
            )
            return False
        except httpx.HTTPError as exc:
            logger.error("webhook_send_error", url=url, error=str(exc))
            return False

    def _format_payload(self, url: str, payload: dict) -> dict:
        message = self._build_message_text(payload)

        if "hooks.slack.com" in url:
            return {"text": message}

        if "discord.com" in url:
            return {"content": message}

        return {**payload, "text": message}

    def _build_message_text(self, payload: dict) -> str:
        site = payload.get("site_name") or "Comments"
        parts = [f"[{site}] New comment from {payload.get('nick', '')}"]
        if payload.get("is_spam"):
            parts[0] += " (held as spam)"
        if payload.get("comment"):
            parts.append(payload["comment"])
        if payload.get("href"):
            parts.append(payload["href"])
        return "\n".join(parts)
