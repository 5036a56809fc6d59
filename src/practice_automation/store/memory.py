"""In-memory entity store with deterministic record ids."""

import copy
import re
from typing import Any

import structlog

from practice_automation.errors import RecordNotFoundError
from practice_automation.store.base import EntityName, entity_key

logger = structlog.get_logger(__name__)


def _id_prefix(name: str) -> str:
    # "AccountReconciliation" -> "account_reconciliation"
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


class InMemoryCollection:
    """Dict-backed collection. Records are copied on the way in and out."""

    def __init__(self, name: str):
        self.name = name
        self._records: dict[str, dict[str, Any]] = {}
        self._counter = 0

    def _next_id(self) -> str:
        self._counter += 1
        return f"{_id_prefix(self.name)}-{self._counter:06d}"

    def seed(self, records: list[dict[str, Any]]) -> None:
        """Insert records as-is, assigning ids only where missing."""
        for record in records:
            stored = copy.deepcopy(record)
            if not stored.get("id"):
                stored["id"] = self._next_id()
            self._records[str(stored["id"])] = stored

    def all(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._records.values()]

    def get(self, record_id: str) -> dict[str, Any] | None:
        record = self._records.get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def __len__(self) -> int:
        return len(self._records)

    async def list(
        self,
        filter: dict[str, Any] | None = None,
        sort: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        records = list(self._records.values())
        if filter:
            records = [
                r for r in records if all(r.get(key) == value for key, value in filter.items())
            ]
        if sort:
            field = sort.lstrip("-")
            records.sort(key=lambda r: (r.get(field) is None, str(r.get(field, ""))))
            if sort.startswith("-"):
                records.reverse()
        if limit is not None:
            records = records[:limit]
        return [copy.deepcopy(r) for r in records]

    async def create(self, data: dict[str, Any]) -> dict[str, Any]:
        record = copy.deepcopy(data)
        record["id"] = self._next_id()
        self._records[record["id"]] = record
        logger.debug("record_created", entity=self.name, record_id=record["id"])
        return copy.deepcopy(record)

    async def update(self, record_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(
                f"{self.name} {record_id} not found", status_code=404
            )
        record.update(copy.deepcopy(patch))
        record["id"] = record_id
        return copy.deepcopy(record)

    async def delete(self, record_id: str) -> None:
        if self._records.pop(record_id, None) is None:
            raise RecordNotFoundError(
                f"{self.name} {record_id} not found", status_code=404
            )


class InMemoryEntityStore:
    """Entity store holding every collection in process memory."""

    def __init__(self, data: dict[str, list[dict[str, Any]]] | None = None):
        self._collections: dict[str, InMemoryCollection] = {}
        for name, records in (data or {}).items():
            self.collection(name).seed(records)

    def collection(self, name: EntityName | str) -> InMemoryCollection:
        key = entity_key(name)
        if key not in self._collections:
            self._collections[key] = InMemoryCollection(key)
        return self._collections[key]
