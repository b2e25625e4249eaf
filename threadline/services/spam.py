"""Spam screening: a local pre-check at submit time and Akismet afterwards."""

import httpx

from ..constants import DEFAULT_LIMIT_LENGTH
from ..errors import ValidationError
from ..utils.logging import get_logger

logger = get_logger("threadline.services.spam")

MANUAL_REVIEW = "MANUAL_REVIEW"
AKISMET_VERIFY_URL = "https://rest.akismet.com/1.1/verify-key"
AKISMET_CHECK_URL = "https://{key}.rest.akismet.com/1.1/comment-check"


def _limit_length(config: dict) -> int:
    try:
        return int(config.get("LIMIT_LENGTH", DEFAULT_LIMIT_LENGTH))
    except (TypeError, ValueError):
        return DEFAULT_LIMIT_LENGTH


def pre_check_spam(comment: dict, config: dict) -> bool:
    """Local screening of a submission before it is stored.

    Raises ``ValidationError`` for an over-long body. Returns True when the
    comment must wait for moderation: manual review mode, or a forbidden
    word in the body or the nick.
    """
    body = str(comment.get("comment") or "")
    limit = _limit_length(config)
    if limit and len(body) > limit:
        raise ValidationError("Comment is too long")

    if config.get("AKISMET_KEY") == MANUAL_REVIEW:
        return True

    forbidden = config.get("FORBIDDEN_WORDS")
    if forbidden:
        body = body.lower()
        nick = str(comment.get("nick") or "").lower()
        for word in str(forbidden).split(","):
            word = word.strip().lower()
            if word and (word in body or word in nick):
                logger.info("forbidden_word_hit", word=word)
                return True
    return False


class SpamClassifier:
    """Remote classification through Akismet's comment-check API.

    ``classify`` returns True or False, or None when no verdict is available
    (no key configured, key rejected, service unreachable). A comment that
    the pre-check already flagged stays spam without a remote call.
    """

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout

    async def classify(self, comment: dict, config: dict) -> bool | None:
        if comment.get("isSpam"):
            return True
        key = config.get("AKISMET_KEY")
        if not key or key == MANUAL_REVIEW:
            return None

        blog = config.get("SITE_URL") or ""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(AKISMET_VERIFY_URL, data={"key": key, "blog": blog})
                response.raise_for_status()
                if response.text.strip() != "valid":
                    logger.warning("akismet_key_invalid")
                    return None

                response = await client.post(
                    AKISMET_CHECK_URL.format(key=key),
                    data={
                        "blog": blog,
                        "user_ip": comment.get("ip", ""),
                        "user_agent": comment.get("ua", ""),
                        "permalink": comment.get("href", ""),
                        "comment_type": "reply" if comment.get("rid") else "comment",
                        "comment_author": comment.get("nick", ""),
                        "comment_author_email": comment.get("mail", ""),
                        "comment_author_url": comment.get("link", ""),
                        "comment_content": comment.get("comment", ""),
                    },
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("akismet_request_error", error=str(exc))
            return None

        verdict = response.text.strip() == "true"
        logger.info("akismet_verdict", id=comment.get("_id"), is_spam=verdict)
        return verdict
