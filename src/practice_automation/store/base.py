"""Persistence contract the engine depends on."""

from enum import Enum
from typing import Any, Protocol


class EntityName(str, Enum):
    """Entity families read or written by the engine."""

    CLIENT = "Client"
    CLIENT_ACCOUNT = "ClientAccount"
    TASK = "Task"
    PERIODIC_REPORT = "PeriodicReport"
    BALANCE_SHEET = "BalanceSheet"
    ACCOUNT_RECONCILIATION = "AccountReconciliation"
    SYSTEM_CONFIG = "SystemConfig"


class EntityCollection(Protocol):
    """CRUD over one entity family.

    ``filter`` is an equality match on top-level fields. ``sort`` names a field,
    prefixed with ``-`` for descending order.
    """

    name: str

    async def list(
        self,
        filter: dict[str, Any] | None = None,
        sort: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...

    async def create(self, data: dict[str, Any]) -> dict[str, Any]: ...

    async def update(self, record_id: str, patch: dict[str, Any]) -> dict[str, Any]: ...

    async def delete(self, record_id: str) -> None: ...


class EntityStore(Protocol):
    """Source of entity collections."""

    def collection(self, name: "EntityName | str") -> EntityCollection: ...


def entity_key(name: "EntityName | str") -> str:
    return name.value if isinstance(name, EntityName) else str(name)
