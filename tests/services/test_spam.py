"""Tests for the spam pre-check and the Akismet classifier."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from threadline.errors import ValidationError
from threadline.services.spam import SpamClassifier, pre_check_spam


class TestPreCheck:
    def test_clean_comment_passes(self):
        assert pre_check_spam({"comment": "Nice post", "nick": "Ann"}, {}) is False

    def test_too_long_rejected(self):
        with pytest.raises(ValidationError):
            pre_check_spam({"comment": "x" * 11}, {"LIMIT_LENGTH": 10})

    def test_zero_length_limit_disables_check(self):
        assert pre_check_spam({"comment": "x" * 1000}, {"LIMIT_LENGTH": 0}) is False

    def test_manual_review(self):
        assert pre_check_spam({"comment": "hi"}, {"AKISMET_KEY": "MANUAL_REVIEW"}) is True

    def test_forbidden_word_in_body_or_nick(self):
        config = {"FORBIDDEN_WORDS": "casino, pills"}
        assert pre_check_spam({"comment": "Best CASINO here"}, config) is True
        assert pre_check_spam({"comment": "hello", "nick": "Pills4U"}, config) is True
        assert pre_check_spam({"comment": "hello", "nick": "Ann"}, config) is False


def _client_returning(*texts):
    responses = []
    for text in texts:
        response = MagicMock()
        response.text = text
        response.raise_for_status = MagicMock()
        responses.append(response)
    client = AsyncMock()
    client.post = AsyncMock(side_effect=responses)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


class TestClassifier:
    @pytest.mark.asyncio
    async def test_prechecked_spam_stays_spam(self):
        assert await SpamClassifier().classify({"isSpam": True}, {"AKISMET_KEY": "k"}) is True

    @pytest.mark.asyncio
    async def test_no_key_no_verdict(self):
        assert await SpamClassifier().classify({"comment": "hi"}, {}) is None

    @pytest.mark.asyncio
    async def test_akismet_verdict(self):
        client = _client_returning("valid", "true")
        with patch("threadline.services.spam.httpx.AsyncClient", return_value=client):
            verdict = await SpamClassifier().classify(
                {"comment": "buy now", "rid": "abc"}, {"AKISMET_KEY": "k", "SITE_URL": "https://b.example"}
            )

        assert verdict is True
        check_call = client.post.call_args_list[1]
        assert check_call.args[0] == "https://k.rest.akismet.com/1.1/comment-check"
        assert check_call.kwargs["data"]["comment_type"] == "reply"

    @pytest.mark.asyncio
    async def test_invalid_key_no_verdict(self):
        client = _client_returning("invalid")
        with patch("threadline.services.spam.httpx.AsyncClient", return_value=client):
            assert await SpamClassifier().classify({"comment": "hi"}, {"AKISMET_KEY": "k"}) is None

    @pytest.mark.asyncio
    async def test_network_error_no_verdict(self):
        client = AsyncMock()
        client.post = AsyncMock(side_effect=httpx.ConnectError("down"))
        client.__aenter__ = AsyncMock(return_value=client)
        client.__aexit__ = AsyncMock(return_value=False)
        with patch("threadline.services.spam.httpx.AsyncClient", return_value=client):
            assert await SpamClassifier().classify({"comment": "hi"}, {"AKISMET_KEY": "k"}) is None
