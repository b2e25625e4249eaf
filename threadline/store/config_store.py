"""Config store: the deployment's single JSON configuration record."""

import json

from ..models import CONFIG_ROW_ID
from ..utils.logging import get_logger

logger = get_logger("threadline.store.config")


class ConfigStore:
    """Reads and merge-writes the one-row configuration table.

    An absent row reads as ``{}``. Writes overlay the new keys on the stored
    map and persist the union, so editing one setting never drops another.
    """

    def __init__(self, storage) -> None:
        self._storage = storage
        self._statements = storage.statements

    async def read(self) -> dict:
        async with self._storage.session() as session:
            result = await session.execute(self._statements.read_config_query)
            value = result.scalar_one_or_none()
        if not value:
            return {}
        config = json.loads(value)
        return config if isinstance(config, dict) else {}

    async def write(self, new_config: dict) -> dict | None:
        """Merge ``new_config`` into the stored map and return the union.

        Returns ``None`` without touching storage when ``new_config`` is empty.
        """
        if not new_config:
            return None
        logger.info("config_write", keys=sorted(new_config))
        merged = {**await self.read(), **new_config}
        async with self._storage.session() as session:
            await session.execute(
                self._statements.write_config_stmt,
                {"row_id": CONFIG_ROW_ID, "new_value": json.dumps(merged, ensure_ascii=False)},
            )
            await session.commit()
        return merged
