"""Windowed submission limits, per IP and site-wide."""

import asyncio

from ..constants import DEFAULT_SUBMIT_LIMIT, SUBMIT_WINDOW_MS
from ..errors import RateLimitedError
from ..utils.clock import now_ms
from ..utils.logging import get_logger

logger = get_logger("threadline.services.limiter")


def _threshold(config: dict, key: str) -> int:
    raw = config.get(key)
    if raw is None or raw == "":
        return DEFAULT_SUBMIT_LIMIT
    try:
        return int(raw)
    except (TypeError, ValueError):
        return DEFAULT_SUBMIT_LIMIT


async def _zero() -> int:
    return 0


async def check_submit_rate(comments, config: dict, ip: str, now: int | None = None) -> None:
    """Reject a submission when the trailing window is already full.

    ``LIMIT_PER_MINUTE`` bounds comments from ``ip`` and
    ``LIMIT_PER_MINUTE_ALL`` bounds all comments, both over the last ten
    minutes. A threshold of 0 disables its check and skips its query. Both
    counts are read concurrently before either is compared.
    """
    per_ip = _threshold(config, "LIMIT_PER_MINUTE")
    overall = _threshold(config, "LIMIT_PER_MINUTE_ALL")
    since = (now_ms() if now is None else now) - SUBMIT_WINDOW_MS

    count_by_ip, count = await asyncio.gather(
        comments.count_since(since, ip=ip) if per_ip else _zero(),
        comments.count_since(since) if overall else _zero(),
    )

    if per_ip and count_by_ip >= per_ip:
        logger.warning("submit_rate_limited", scope="ip", ip=ip, count=count_by_ip)
        raise RateLimitedError("You are commenting too fast, please wait a moment")
    if overall and count >= overall:
        logger.warning("submit_rate_limited", scope="site", count=count)
        raise RateLimitedError("Too many comments right now, please try again later")
