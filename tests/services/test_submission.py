"""Tests for the comment submission pipeline."""

import asyncio
import hashlib

import pytest

from threadline.errors import OwnerIdentityError, RateLimitedError, ValidationError
from threadline.services.submission import submit_comment

EVENT = {"url": "/post/1", "ua": "pytest", "comment": "<p>Nice</p>", "nick": "Ann", "mail": "ann@example.com"}


class TestSubmit:
    @pytest.mark.asyncio
    async def test_stores_and_returns_id(self, make_context, comments):
        res = await submit_comment(make_context(), dict(EVENT))

        stored = await comments.get(res["id"])
        assert stored["uid"] == "visitor-token"
        assert stored["ip"] == "10.0.0.1"
        assert stored["mailMd5"] == hashlib.sha256(b"ann@example.com").hexdigest()
        assert stored["rid"] == ""
        assert stored["isSpam"] is False

    @pytest.mark.asyncio
    async def test_missing_parameter(self, make_context):
        with pytest.raises(ValidationError, match='"ua"'):
            await submit_comment(make_context(), {"url": "/p", "comment": "x"})

    @pytest.mark.asyncio
    async def test_body_is_sanitized(self, make_context, comments):
        event = dict(EVENT, comment="<p>ok</p><script>bad()</script>")
        res = await submit_comment(make_context(), event)
        assert "<script>" not in (await comments.get(res["id"]))["comment"]

    @pytest.mark.asyncio
    async def test_owner_mail_needs_admin(self, make_context):
        ctx = make_context(config={"BLOGGER_EMAIL": "ANN@example.com"})
        with pytest.raises(OwnerIdentityError):
            await submit_comment(ctx, dict(EVENT))

    @pytest.mark.asyncio
    async def test_admin_owner_comment_is_master(self, make_context, comments):
        ctx = make_context(config={"BLOGGER_EMAIL": "ann@example.com", "AKISMET_KEY": "MANUAL_REVIEW"}, is_admin=True)
        res = await submit_comment(ctx, dict(EVENT))
        stored = await comments.get(res["id"])
        assert stored["master"] is True
        assert stored["isSpam"] is False

    @pytest.mark.asyncio
    async def test_manual_review_holds_visitor_comment(self, make_context, comments):
        ctx = make_context(config={"AKISMET_KEY": "MANUAL_REVIEW"})
        res = await submit_comment(ctx, dict(EVENT))
        assert (await comments.get(res["id"]))["isSpam"] is True

    @pytest.mark.asyncio
    async def test_reply_defaults_pid_to_rid(self, make_context, comments):
        root = await submit_comment(make_context(), dict(EVENT))
        reply = await submit_comment(make_context(), dict(EVENT, rid=root["id"]))
        stored = await comments.get(reply["id"])
        assert stored["rid"] == root["id"]
        assert stored["pid"] == root["id"]

    @pytest.mark.asyncio
    async def test_nested_reply_within_thread(self, make_context, comments):
        root = await submit_comment(make_context(), dict(EVENT))
        first = await submit_comment(make_context(), dict(EVENT, rid=root["id"]))
        nested = await submit_comment(make_context(), dict(EVENT, rid=root["id"], pid=first["id"]))
        stored = await comments.get(nested["id"])
        assert (stored["rid"], stored["pid"]) == (root["id"], first["id"])

    @pytest.mark.asyncio
    async def test_parent_from_another_thread_rejected(self, make_context):
        root_a = await submit_comment(make_context(), dict(EVENT))
        root_b = await submit_comment(make_context(), dict(EVENT))
        reply_b = await submit_comment(make_context(), dict(EVENT, rid=root_b["id"]))

        with pytest.raises(ValidationError, match='"pid"'):
            await submit_comment(make_context(), dict(EVENT, rid=root_a["id"], pid=reply_b["id"]))
        with pytest.raises(ValidationError, match='"pid"'):
            await submit_comment(make_context(), dict(EVENT, rid=root_a["id"], pid=root_b["id"]))

    @pytest.mark.asyncio
    async def test_reply_to_unknown_thread_rejected(self, make_context):
        with pytest.raises(ValidationError, match='"rid"'):
            await submit_comment(make_context(), dict(EVENT, rid="missing"))

    @pytest.mark.asyncio
    async def test_rate_limited(self, make_context):
        ctx = make_context(config={"LIMIT_PER_MINUTE": 1})
        await submit_comment(ctx, dict(EVENT))
        with pytest.raises(RateLimitedError):
            await submit_comment(ctx, dict(EVENT))


class TestPostSubmit:
    @pytest.mark.asyncio
    async def test_reclassification_hides_comment(self, make_context, services, comments):
        services.classifier.classify.return_value = True

        res = await submit_comment(make_context(), dict(EVENT))

        exported = {c["_id"]: c for c in await comments.export()}
        assert exported[res["id"]]["isSpam"] is True
        page = await comments.get_page("/post/1", uid="someone-else")
        assert page.comments == []
        services.notifier.notify.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_same_verdict_is_not_rewritten(self, make_context, services, comments):
        services.classifier.classify.return_value = False
        res = await submit_comment(make_context(), dict(EVENT))
        stored = await comments.get(res["id"])
        assert stored["updated"] == stored["created"]

    @pytest.mark.asyncio
    async def test_slow_background_work_outlives_the_request(self, make_context, services, settings, comments):
        settings.post_submit_timeout = 0.05
        release = asyncio.Event()

        async def slow_classify(comment, config):
            await release.wait()
            return True

        services.classifier.classify.side_effect = slow_classify

        res = await submit_comment(make_context(), dict(EVENT))

        assert len(services.background) == 1
        assert (await comments.get(res["id"]))["isSpam"] is False

        release.set()
        await services.background.drain(timeout=5)
        assert (await comments.get(res["id"]))["isSpam"] is True

    @pytest.mark.asyncio
    async def test_background_failure_does_not_fail_submit(self, make_context, services):
        services.classifier.classify.side_effect = RuntimeError("boom")
        res = await submit_comment(make_context(), dict(EVENT))
        assert res["id"]
        services.notifier.notify.assert_not_called()
