"""Cloudflare Turnstile bot challenge."""

import httpx

from ..errors import CaptchaError
from ..utils.logging import get_logger

logger = get_logger("threadline.services.captcha")

TURNSTILE_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"


def captcha_enabled(config: dict) -> bool:
    return bool(config.get("TURNSTILE_SITE_KEY") and config.get("TURNSTILE_SECRET_KEY"))


async def verify_captcha(token: str | None, ip: str, secret: str, timeout: float = 10.0) -> None:
    """Raise ``CaptchaError`` unless Turnstile accepts ``token``."""
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(
                TURNSTILE_VERIFY_URL,
                data={"secret": secret, "response": token or "", "remoteip": ip},
            )
            response.raise_for_status()
            result = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("turnstile_request_error", error=str(exc))
        raise CaptchaError(f"Captcha check failed: {exc}") from exc

    logger.info("turnstile_result", success=result.get("success"))
    if not result.get("success"):
        raise CaptchaError("Captcha check failed: wrong captcha")
