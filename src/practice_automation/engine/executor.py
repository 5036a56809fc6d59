"""Commits checked preview items and verifies each creation."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

import structlog

from practice_automation.config import get_settings
from practice_automation.engine.concurrency import CancellationToken, run_bounded
from practice_automation.engine.preview import PreviewItem, PreviewResult
from practice_automation.errors import (
    ItemCreationError,
    ItemCreationWarning,
    OperationInProgressError,
)
from practice_automation.store.base import EntityStore

logger = structlog.get_logger(__name__)

# Shown to the operator when a create call returned without a record id.
MISSING_ID_MESSAGE = "נוצר אך לא התקבל אישור ID"


class ItemStatus(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class ExecutionDetail:
    """Outcome of one attempted write."""

    client_name: str
    entity_label: str
    description: str
    status: ItemStatus
    record_id: str | None = None
    message: str | None = None
    item_id: str | None = None
    client_id: str | None = None


@dataclass
class ExecutionResult:
    """Aggregated outcome of a batch, details in original item order."""

    clients: int = 0
    created: int = 0
    warnings: int = 0
    errors: int = 0
    cancelled: bool = False
    details: list[ExecutionDetail] = field(default_factory=list)

    @classmethod
    def from_details(
        cls, details: list[ExecutionDetail], clients: int, cancelled: bool = False
    ) -> "ExecutionResult":
        return cls(
            clients=clients,
            created=sum(1 for d in details if d.status is ItemStatus.SUCCESS),
            warnings=sum(1 for d in details if d.status is ItemStatus.WARNING),
            errors=sum(1 for d in details if d.status is ItemStatus.ERROR),
            cancelled=cancelled,
            details=details,
        )


class Executor:
    """Creates the checked preview items through the entity store.

    A failing item is recorded and the batch continues. One executor runs one
    batch at a time.
    """

    def __init__(self, store: EntityStore, max_concurrency: int | None = None):
        self._store = store
        self._max_concurrency = max_concurrency or get_settings().automation_max_concurrency
        self._is_running = False
        self._logger = logger.bind(component="executor")

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def execute(
        self,
        items: PreviewResult | Iterable[PreviewItem],
        cancel_token: CancellationToken | None = None,
    ) -> ExecutionResult:
        """Create every checked item.

        Raises:
            OperationInProgressError: If this executor is already running a batch.
        """
        if self._is_running:
            raise OperationInProgressError("An execution is already in progress")
        self._is_running = True
        try:
            if isinstance(items, PreviewResult):
                checked = items.checked_items()
            else:
                checked = [item for item in items if item.checked]
            if not checked:
                return ExecutionResult()

            self._logger.info(
                "execution_started",
                items=len(checked),
                max_concurrency=self._max_concurrency,
            )
            pool = await run_bounded(
                checked, self._run_item, self._max_concurrency, cancel_token
            )
            result = ExecutionResult.from_details(
                pool.results,
                clients=len({detail.client_id for detail in pool.results}),
                cancelled=pool.cancelled,
            )
            self._logger.info(
                "execution_completed",
                created=result.created,
                warnings=result.warnings,
                errors=result.errors,
                cancelled=result.cancelled,
                not_attempted=pool.total - pool.attempted,
            )
            return result
        finally:
            self._is_running = False

    async def _create(self, item: PreviewItem) -> str:
        """Create one record and return its id.

        Raises:
            ItemCreationError: If the store call failed.
            ItemCreationWarning: If the store returned no record id.
        """
        collection = self._store.collection(item.record_entity)
        try:
            record = await collection.create(dict(item.create_data))
        except Exception as e:
            raise ItemCreationError(item.id, str(e)) from e
        record_id = record.get("id") if isinstance(record, dict) else None
        if not record_id:
            raise ItemCreationWarning(item.id)
        return str(record_id)

    async def _run_item(self, item: PreviewItem) -> ExecutionDetail:
        detail = ExecutionDetail(
            client_name=item.client_name,
            entity_label=item.entity_label,
            description=item.description,
            status=ItemStatus.SUCCESS,
            item_id=item.id,
            client_id=item.client_id,
        )
        try:
            detail.record_id = await self._create(item)
        except ItemCreationWarning:
            self._logger.warning("item_created_without_id", item_id=item.id)
            detail.status = ItemStatus.WARNING
            detail.message = MISSING_ID_MESSAGE
        except ItemCreationError as e:
            self._logger.warning("item_creation_failed", item_id=item.id, error=e.reason)
            detail.status = ItemStatus.ERROR
            detail.message = e.reason
        else:
            self._logger.debug("item_created", item_id=item.id, record_id=detail.record_id)
        return detail
