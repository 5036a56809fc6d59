"""Keyed configuration documents stored in the SystemConfig entity."""

from typing import Any

from practice_automation.store.base import EntityName, EntityStore

# Configuration documents are few; one page is always enough.
_CONFIG_LIST_LIMIT = 50


class SystemConfigStore:
    """Read and write ``{config_key, data}`` records."""

    def __init__(self, store: EntityStore):
        self._collection = store.collection(EntityName.SYSTEM_CONFIG)

    async def find(self, config_key: str) -> dict[str, Any] | None:
        """Return the first record with ``config_key``, or None."""
        configs = await self._collection.list(limit=_CONFIG_LIST_LIMIT)
        for config in configs:
            if config.get("config_key") == config_key:
                return config
        return None

    async def create(self, config_key: str, data: dict[str, Any]) -> str | None:
        record = await self._collection.create({"config_key": config_key, "data": data})
        return record.get("id")

    async def save(self, config_key: str, config_id: str | None, data: dict[str, Any]) -> str | None:
        """Update an existing record, or create one when ``config_id`` is None."""
        if config_id:
            await self._collection.update(config_id, {"data": data})
            return config_id
        return await self.create(config_key, data)
