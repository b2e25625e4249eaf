"""In-memory per-IP request counter for the process guard."""

from collections import defaultdict


class RequestThrottle:
    """Counts every request per key since the process started.

    There is no window: once a key has made more than ``max_requests``
    requests it stays rejected until the process restarts.
    """

    def __init__(self, max_requests: int = 250):
        self.max_requests = max_requests
        self._counts: dict[str, int] = defaultdict(int)

    def hit(self, key: str) -> int:
        """Record one request for ``key`` and return its running count."""
        self._counts[key] += 1
        return self._counts[key]

    def is_blocked(self, key: str) -> bool:
        return self._counts.get(key, 0) > self.max_requests

    def count(self, key: str) -> int:
        return self._counts.get(key, 0)

    def remaining(self, key: str) -> int:
        return max(0, self.max_requests - self.count(key))

    def reset(self, key: str | None = None) -> None:
        """Forget ``key``, or every key when None."""
        if key is None:
            self._counts.clear()
        else:
            self._counts.pop(key, None)
