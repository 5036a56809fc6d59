"""Entity persistence adapters."""

from practice_automation.store.base import EntityCollection, EntityName, EntityStore
from practice_automation.store.http import HttpEntityStore
from practice_automation.store.memory import InMemoryEntityStore
from practice_automation.store.system_config import SystemConfigStore

__all__ = [
    "EntityCollection",
    "EntityName",
    "EntityStore",
    "HttpEntityStore",
    "InMemoryEntityStore",
    "SystemConfigStore",
]
