"""Per-URL page view counter."""

from ..utils.clock import now_ms


class CounterStore:
    def __init__(self, storage) -> None:
        self._storage = storage
        self._statements = storage.statements

    async def increment(self, url: str, title: str | None = None) -> int:
        """Count one hit for ``url`` and return the total.

        The increment is a single ``INSERT ... ON CONFLICT DO UPDATE`` so
        concurrent hits on the same page never overwrite each other.
        """
        async with self._storage.session() as session:
            await session.execute(
                self._statements.inc_counter_stmt,
                {"counter_url": url, "counter_title": title or "", "counter_now": now_ms()},
            )
            await session.commit()
            result = await session.execute(
                self._statements.counter_query, {"counter_url": url}
            )
            return result.scalar_one()
