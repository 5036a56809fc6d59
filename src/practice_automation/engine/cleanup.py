"""Invalidates generated tasks that no longer match their client.

Cleanup never deletes a task and never reopens one: it only moves active
tasks (anything but completed / not_relevant) into ``not_relevant`` and logs
every transition with its reason.
"""

import asyncio
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from practice_automation.clients import ClientProfile
from practice_automation.config import get_settings
from practice_automation.engine.concurrency import CancellationToken
from practice_automation.errors import OperationInProgressError, ScanError
from practice_automation.periods import (
    HEB_MONTHS,
    frequency_for_category,
    parse_frequency,
    task_report_month,
    valid_months,
)
from practice_automation.rules.catalog import (
    CATEGORY_FREQUENCY_FIELD,
    CATEGORY_SERVICE,
    CLOSED_STATUSES,
    SERVICE_CATEGORIES,
    SERVICE_LABELS,
    Frequency,
    RecordStatus,
    Service,
    TaskCategory,
)
from practice_automation.rules.matcher import effective_services
from practice_automation.rules.models import Rule
from practice_automation.store.base import EntityName, EntityStore

logger = structlog.get_logger(__name__)


class CleanupReason(str, Enum):
    SERVICE_REMOVED = "service_removed"
    ORPHAN_SERVICE = "orphan_service"
    WRONG_MONTH = "wrong_month"
    FREQUENCY_NOT_APPLICABLE = "frequency_not_applicable"

    @property
    def label(self) -> str:
        return REASON_LABELS[self]


REASON_LABELS: dict[CleanupReason, str] = {
    CleanupReason.SERVICE_REMOVED: "שירות הוסר מהכרטיס",
    CleanupReason.ORPHAN_SERVICE: "שירות יתום (שירות האב הוסר)",
    CleanupReason.WRONG_MONTH: "חודש לא רלוונטי לתדירות",
    CleanupReason.FREQUENCY_NOT_APPLICABLE: "תדירות לא רלוונטית",
}


@dataclass(frozen=True)
class CleanupFinding:
    """A task that should be marked not_relevant, with the audit reason."""

    task_id: str
    client_id: str
    client_name: str
    task_title: str
    category: str
    reason: CleanupReason
    detail: str = ""


@dataclass
class CleanupReport:
    invalidated: list[CleanupFinding] = field(default_factory=list)
    failed: list[tuple[CleanupFinding, str]] = field(default_factory=list)
    skipped_clients: list[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def cleaned(self) -> int:
        return len(self.invalidated)


def _service_label(service: Service) -> str:
    return SERVICE_LABELS.get(service, service.value)


def _is_active(task: Mapping[str, Any]) -> bool:
    return task.get("status") not in CLOSED_STATUSES


def _category_of(task: Mapping[str, Any]) -> TaskCategory | None:
    try:
        return TaskCategory(task.get("category"))
    except ValueError:
        return None


def _finding(
    task: Mapping[str, Any],
    client: ClientProfile,
    category: TaskCategory,
    reason: CleanupReason,
    detail: str,
) -> CleanupFinding:
    return CleanupFinding(
        task_id=str(task.get("id")),
        client_id=client.id,
        client_name=client.name,
        task_title=str(task.get("title") or ""),
        category=category.value,
        reason=reason,
        detail=detail,
    )


def frequency_violation(
    task: Mapping[str, Any], category: TaskCategory, reporting_info: Mapping[str, Any]
) -> tuple[CleanupReason, str] | None:
    """Reason a recurring task is invalid under the client's frequency, if any."""
    frequency = frequency_for_category(category, reporting_info)
    if frequency is None:
        return None
    if frequency is Frequency.NOT_APPLICABLE:
        return (
            CleanupReason.FREQUENCY_NOT_APPLICABLE,
            f'תדירות "{category.value}" מוגדרת כ"לא רלוונטי" בכרטיס',
        )
    report_month = task_report_month(task)
    if report_month is None:
        return None
    year, month = report_month
    if month in valid_months(frequency):
        return None
    return (
        CleanupReason.WRONG_MONTH,
        f"תדירות {frequency.value}, משימה עבור {HEB_MONTHS[month]} {year}",
    )


def evaluate_task(
    task: Mapping[str, Any], client: ClientProfile, effective: set[str]
) -> CleanupFinding | None:
    """Check one active task against the client's effective services and frequencies.

    A service still declared on the client but missing from ``effective`` is an
    orphaned auto-link child and counts as removed.
    """
    category = _category_of(task)
    if category is None or not _is_active(task):
        return None

    service = CATEGORY_SERVICE[category]
    if service.value in effective:
        violation = frequency_violation(task, category, client.reporting_info)
        if violation is None:
            return None
        reason, detail = violation
        return _finding(task, client, category, reason, detail)

    if service.value not in client.service_types:
        return _finding(
            task,
            client,
            category,
            CleanupReason.SERVICE_REMOVED,
            f'קטגוריה "{category.value}" דורשת שירות "{_service_label(service)}" - לא קיים בכרטיס',
        )
    return _finding(
        task,
        client,
        category,
        CleanupReason.ORPHAN_SERVICE,
        f'שירות "{_service_label(service)}" קיים אבל שירות האב הוסר',
    )


def assign_owners(
    tasks: Iterable[Mapping[str, Any]], clients: Sequence[ClientProfile]
) -> dict[str, list[Mapping[str, Any]]]:
    """Group tasks by the one client each belongs to.

    A task with a ``client_id`` belongs to that client only. A legacy task
    without one goes to the first client with the same name.
    """
    by_id = {client.id: client for client in clients}
    by_name: dict[str, ClientProfile] = {}
    for client in clients:
        by_name.setdefault(client.name, client)

    owned: dict[str, list[Mapping[str, Any]]] = defaultdict(list)
    for task in tasks:
        client_id = task.get("client_id")
        owner = by_id.get(client_id) if client_id else by_name.get(task.get("client_name"))
        if owner is not None:
            owned[owner.id].append(task)
    return owned


class CleanupEngine:
    """Per-edit sweeps and the system-wide sweep over generated tasks."""

    def __init__(
        self,
        store: EntityStore,
        rules: Sequence[Rule] = (),
        yield_every: int | None = None,
        list_limit: int | None = None,
    ):
        settings = get_settings()
        self._clients = store.collection(EntityName.CLIENT)
        self._tasks = store.collection(EntityName.TASK)
        self._rules = list(rules)
        self._yield_every = yield_every or settings.automation_yield_every
        self._list_limit = list_limit or settings.entity_list_limit
        self._is_running = False
        self._logger = logger.bind(component="cleanup_engine")

    async def _load_tasks(self) -> list[dict[str, Any]]:
        try:
            return await self._tasks.list(limit=self._list_limit * 2)
        except Exception as e:
            raise ScanError(f"Failed to load tasks: {e}") from e

    async def _client_tasks(self, client: ClientProfile) -> list[dict[str, Any]]:
        tasks = await self._load_tasks()
        return [task for task in tasks if client.owns(task) and _is_active(task)]

    # =========================================================================
    # PER-EDIT SWEEPS
    # =========================================================================

    async def on_services_changed(
        self,
        client: Mapping[str, Any],
        old_services: Iterable[str],
        new_services: Iterable[str],
    ) -> CleanupReport:
        """Invalidate the client's active tasks for services that were removed."""
        profile = ClientProfile.from_record(dict(client))
        removed = set(old_services) - set(new_services)
        categories: set[TaskCategory] = set()
        for service in removed:
            try:
                categories.update(SERVICE_CATEGORIES.get(Service(service), ()))
            except ValueError:
                self._logger.debug("unknown_service_removed", service=service)
        if not categories:
            return CleanupReport()

        findings = []
        for task in await self._client_tasks(profile):
            category = _category_of(task)
            if category is None or category not in categories:
                continue
            service = CATEGORY_SERVICE[category]
            findings.append(
                _finding(
                    task,
                    profile,
                    category,
                    CleanupReason.SERVICE_REMOVED,
                    f'שירות "{_service_label(service)}" הוסר מהכרטיס',
                )
            )
        return await self.apply(findings)

    async def on_reporting_info_changed(
        self,
        client: Mapping[str, Any],
        old_info: Mapping[str, Any] | None,
        new_info: Mapping[str, Any] | None,
    ) -> CleanupReport:
        """Invalidate the client's recurring tasks that fall outside a changed frequency."""
        profile = ClientProfile.from_record(dict(client))
        old_info = old_info or {}
        new_info = new_info or {}
        changed = {
            category
            for category, frequency_field in CATEGORY_FREQUENCY_FIELD.items()
            if parse_frequency(old_info.get(frequency_field.value))
            != parse_frequency(new_info.get(frequency_field.value))
        }
        if not changed:
            return CleanupReport()

        findings = []
        for task in await self._client_tasks(profile):
            category = _category_of(task)
            if category is None or category not in changed:
                continue
            violation = frequency_violation(task, category, new_info)
            if violation is not None:
                reason, detail = violation
                findings.append(_finding(task, profile, category, reason, detail))
        return await self.apply(findings)

    # =========================================================================
    # SYSTEM-WIDE SWEEP
    # =========================================================================

    async def scan_system(
        self, cancel_token: CancellationToken | None = None
    ) -> tuple[list[CleanupFinding], list[str]]:
        """Find every active task that no longer matches its client. No writes.

        Returns:
            Tuple of (findings, ids of client records that could not be read).

        Raises:
            ScanError: If clients or tasks cannot be loaded at all.
        """
        try:
            records = await self._clients.list(limit=self._list_limit)
        except Exception as e:
            raise ScanError(f"Failed to load clients: {e}") from e
        tasks = [task for task in await self._load_tasks() if _is_active(task)]

        clients: list[ClientProfile] = []
        skipped: list[str] = []
        for record in records:
            try:
                clients.append(ClientProfile.from_record(record))
            except ValueError as e:
                self._logger.warning(
                    "client_unreadable", client_id=record.get("id"), error=str(e)
                )
                skipped.append(str(record.get("id")))
        tasks_by_client = assign_owners(tasks, clients)

        findings: list[CleanupFinding] = []
        for index, client in enumerate(clients):
            if cancel_token is not None and cancel_token.cancelled:
                break
            if index and index % self._yield_every == 0:
                await asyncio.sleep(0)

            effective = effective_services(
                client.service_types, self._rules, client.business_type
            )
            for task in tasks_by_client.get(client.id, ()):
                finding = evaluate_task(task, client, effective)
                if finding is not None:
                    findings.append(finding)

        self._logger.info("cleanup_scan_completed", findings=len(findings), skipped=len(skipped))
        return findings, skipped

    async def apply(self, findings: Iterable[CleanupFinding]) -> CleanupReport:
        """Mark each finding's task not_relevant. A failed update is logged and skipped."""
        report = CleanupReport()
        seen: set[str] = set()
        for finding in findings:
            if finding.task_id in seen:
                continue
            seen.add(finding.task_id)
            try:
                await self._tasks.update(
                    finding.task_id, {"status": RecordStatus.NOT_RELEVANT.value}
                )
            except Exception as e:
                self._logger.warning(
                    "task_invalidation_failed", task_id=finding.task_id, error=str(e)
                )
                report.failed.append((finding, str(e)))
                continue
            self._logger.info(
                "task_invalidated",
                task_id=finding.task_id,
                client_name=finding.client_name,
                task_title=finding.task_title,
                category=finding.category,
                reason=finding.reason.value,
                reason_label=finding.reason.label,
            )
            report.invalidated.append(finding)
        return report

    async def sweep_system(self, cancel_token: CancellationToken | None = None) -> CleanupReport:
        """Scan all clients and invalidate every finding.

        Raises:
            OperationInProgressError: If a sweep is already running.
        """
        if self._is_running:
            raise OperationInProgressError("A cleanup sweep is already in progress")
        self._is_running = True
        try:
            findings, skipped = await self.scan_system(cancel_token)
            report = await self.apply(findings)
            report.skipped_clients = skipped
            report.cancelled = cancel_token is not None and cancel_token.cancelled
            self._logger.info(
                "cleanup_sweep_completed",
                cleaned=report.cleaned,
                failed=len(report.failed),
                skipped_clients=len(skipped),
            )
            return report
        finally:
            self._is_running = False
