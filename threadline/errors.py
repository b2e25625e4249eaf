"""Domain errors raised by handlers and converted to response envelopes."""

from collections.abc import Iterable, Mapping

from .constants import ResCode


class ThreadlineError(Exception):
    """Base class for errors whose message is safe to return to the client."""

    code: ResCode = ResCode.FAIL

    def __init__(self, message: str, code: ResCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(ThreadlineError):
    """A required parameter is missing or malformed."""


class NeedLoginError(ThreadlineError):
    code = ResCode.NEED_LOGIN

    def __init__(self, message: str = "Please log in first") -> None:
        super().__init__(message)


class RateLimitedError(ThreadlineError):
    pass


class CaptchaError(ThreadlineError):
    pass


class OwnerIdentityError(ThreadlineError):
    """Someone used the site owner's mail without an admin session."""


def validate(event: Mapping, params: Iterable[str]) -> None:
    """Raise ``ValidationError`` for the first missing or empty parameter."""
    for param in params:
        if not event.get(param):
            raise ValidationError(f'Invalid parameter "{param}"')
