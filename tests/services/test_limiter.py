"""Tests for the windowed submission limits."""

from unittest.mock import AsyncMock

import pytest

from threadline.errors import RateLimitedError
from threadline.services.limiter import check_submit_rate

NOW = 1_700_000_000_000


async def _fill(comments, make_record, count, ip="10.0.0.1", created=NOW - 1_000):
    for _ in range(count):
        await comments.save(make_record(ip=ip, created=created))


class TestPerIpLimit:
    @pytest.mark.asyncio
    async def test_threshold_th_submission_passes(self, comments, make_record):
        await _fill(comments, make_record, 2)
        await check_submit_rate(comments, {"LIMIT_PER_MINUTE": 3}, "10.0.0.1", now=NOW)

    @pytest.mark.asyncio
    async def test_one_over_threshold_fails(self, comments, make_record):
        await _fill(comments, make_record, 3)
        with pytest.raises(RateLimitedError, match="too fast"):
            await check_submit_rate(comments, {"LIMIT_PER_MINUTE": 3}, "10.0.0.1", now=NOW)

    @pytest.mark.asyncio
    async def test_other_ips_do_not_count(self, comments, make_record):
        await _fill(comments, make_record, 3, ip="10.9.9.9")
        await check_submit_rate(
            comments, {"LIMIT_PER_MINUTE": 3, "LIMIT_PER_MINUTE_ALL": 0}, "10.0.0.1", now=NOW
        )

    @pytest.mark.asyncio
    async def test_window_expiry(self, comments, make_record):
        await _fill(comments, make_record, 3, created=NOW - 700_000)
        await check_submit_rate(comments, {"LIMIT_PER_MINUTE": 3}, "10.0.0.1", now=NOW)


class TestGlobalLimit:
    @pytest.mark.asyncio
    async def test_site_wide_limit(self, comments, make_record):
        await _fill(comments, make_record, 2, ip="10.1.1.1")
        await _fill(comments, make_record, 2, ip="10.2.2.2")
        with pytest.raises(RateLimitedError, match="Too many comments"):
            await check_submit_rate(
                comments, {"LIMIT_PER_MINUTE": 10, "LIMIT_PER_MINUTE_ALL": 4}, "10.3.3.3", now=NOW
            )

    @pytest.mark.asyncio
    async def test_default_threshold_is_ten(self, comments, make_record):
        await _fill(comments, make_record, 10)
        with pytest.raises(RateLimitedError):
            await check_submit_rate(comments, {}, "10.0.0.1", now=NOW)


class TestDisabled:
    @pytest.mark.asyncio
    async def test_zero_skips_queries(self):
        comments = AsyncMock()
        await check_submit_rate(
            comments, {"LIMIT_PER_MINUTE": 0, "LIMIT_PER_MINUTE_ALL": "0"}, "10.0.0.1", now=NOW
        )
        comments.count_since.assert_not_called()
