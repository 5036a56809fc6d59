"""Builds the list of records an automation run would create.

A scan only reads. It loads clients and every existing record family once,
then walks clients in order, expanding each applicable rule into candidate
items and dropping candidates that already exist.
"""

import asyncio
from collections import defaultdict
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import structlog

from practice_automation.clients import ClientProfile
from practice_automation.config import get_settings
from practice_automation.due_dates import DueDateCalculator, ServiceDueDates
from practice_automation.engine.concurrency import CancellationToken
from practice_automation.engine.existence import ExistenceChecker, PeriodicReportDedupPolicy
from practice_automation.errors import OperationInProgressError, ScanError
from practice_automation.periods import MonthSpan, expand_months, is_month_valid
from practice_automation.rules.catalog import (
    CYCLE_CATEGORIES,
    ITEM_LABELS,
    PERIODIC_REPORT_TYPE_LABELS,
    REPORT_PERIOD_LABELS,
    RecordStatus,
    ReportPeriod,
    TargetEntity,
)
from practice_automation.rules.matcher import effective_services, matching_report_rules
from practice_automation.rules.models import (
    BalanceSheetRule,
    PeriodicReportRule,
    ReconciliationRule,
    ReportAutoCreateRule,
    ReportRuleBase,
    Rule,
    TaskRule,
)
from practice_automation.store.base import EntityName, EntityStore

logger = structlog.get_logger(__name__)


@dataclass
class PreviewItem:
    """One record that would be created if the operator keeps it checked."""

    id: str
    rule_id: str
    rule_name: str
    client_id: str
    client_name: str
    entity: TargetEntity
    entity_label: str
    description: str
    create_data: dict[str, Any]
    checked: bool = True

    @property
    def record_entity(self) -> str:
        return self.entity.record_entity


@dataclass
class PreviewResult:
    """Items found by a scan plus the operator's selection."""

    items: list[PreviewItem] = field(default_factory=list)
    total_clients: int = 0
    cancelled: bool = False

    @property
    def affected_clients(self) -> int:
        return len({item.client_id for item in self.items})

    def checked_items(self) -> list[PreviewItem]:
        return [item for item in self.items if item.checked]

    def toggle(self, item_id: str) -> bool:
        """Flip one item's checkbox and return its new state.

        Raises:
            KeyError: If no item has this id.
        """
        for item in self.items:
            if item.id == item_id:
                item.checked = not item.checked
                return item.checked
        raise KeyError(item_id)

    def set_client_checked(self, client_id: str, checked: bool) -> int:
        """Check or uncheck every item of one client. Returns the item count."""
        count = 0
        for item in self.items:
            if item.client_id == client_id:
                item.checked = checked
                count += 1
        return count


def periodic_report_target_date(report_year: int, period: ReportPeriod) -> str:
    """Filing deadline for a periodic report of ``report_year``."""
    if period is ReportPeriod.H1:
        return f"{report_year}-07-18"
    if period is ReportPeriod.H2:
        return f"{report_year + 1}-01-18"
    return f"{report_year + 1}-04-30"


@dataclass
class _Snapshot:
    clients: list[ClientProfile]
    existence: ExistenceChecker
    accounts_by_client: dict[str, list[dict[str, Any]]]


class PreviewBuilder:
    """Scans active clients against report rules. Performs no writes."""

    def __init__(
        self,
        store: EntityStore,
        rules: Sequence[Rule],
        due_dates: ServiceDueDates | None = None,
        dedup_policy: PeriodicReportDedupPolicy | None = None,
        yield_every: int | None = None,
        list_limit: int | None = None,
        today: date | None = None,
    ):
        settings = get_settings()
        self._store = store
        self._rules = list(rules)
        self._due_dates = DueDateCalculator(due_dates)
        self._dedup_policy = dedup_policy or PeriodicReportDedupPolicy(
            settings.periodic_report_dedup_policy
        )
        self._yield_every = yield_every or settings.automation_yield_every
        self._list_limit = list_limit or settings.entity_list_limit
        self._today = today
        self._is_running = False
        self._logger = logger.bind(component="preview_builder")

    @property
    def is_running(self) -> bool:
        return self._is_running

    def _select_rules(self, rule_ids: Iterable[str] | None) -> list[ReportAutoCreateRule]:
        report_rules = [
            rule for rule in self._rules if isinstance(rule, ReportRuleBase) and rule.enabled
        ]
        if rule_ids is None:
            return report_rules  # type: ignore[return-value]
        wanted = set(rule_ids)
        return [rule for rule in report_rules if rule.id in wanted]  # type: ignore[misc]

    async def _load_snapshot(self) -> _Snapshot:
        limit = self._list_limit
        try:
            clients_raw, reports, sheets, recs, tasks, accounts = await asyncio.gather(
                self._store.collection(EntityName.CLIENT).list(limit=limit),
                self._store.collection(EntityName.PERIODIC_REPORT).list(limit=limit),
                self._store.collection(EntityName.BALANCE_SHEET).list(limit=limit),
                self._store.collection(EntityName.ACCOUNT_RECONCILIATION).list(limit=limit),
                self._store.collection(EntityName.TASK).list(limit=limit * 2),
                self._store.collection(EntityName.CLIENT_ACCOUNT).list(limit=limit),
            )
        except Exception as e:
            raise ScanError(f"Failed to load records for scan: {e}") from e

        clients: list[ClientProfile] = []
        for record in clients_raw:
            if record.get("status") != "active":
                continue
            try:
                clients.append(ClientProfile.from_record(record))
            except ValueError as e:
                self._logger.warning("client_skipped", client_id=record.get("id"), error=str(e))

        accounts_by_client: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for account in accounts:
            if account.get("client_id"):
                accounts_by_client[account["client_id"]].append(account)

        existence = ExistenceChecker(
            periodic_reports=reports,
            balance_sheets=sheets,
            reconciliations=recs,
            tasks=tasks,
            policy=self._dedup_policy,
        )
        return _Snapshot(clients, existence, accounts_by_client)

    async def build(
        self,
        start_year: int,
        start_month: int,
        rule_ids: Iterable[str] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> PreviewResult:
        """Scan every active client and return the candidate items.

        Args:
            start_year: First year of the task/reconciliation month range.
            start_month: First month of the range, 0-based.
            rule_ids: Restrict the scan to these rules. Defaults to every
                enabled report rule.
            cancel_token: Checked between clients.

        Raises:
            ScanError: If clients or existing records cannot be loaded.
            ValueError: If the start month is invalid or in the future.
        """
        if self._is_running:
            raise OperationInProgressError("A scan is already in progress")
        self._is_running = True
        try:
            return await self._build(start_year, start_month, rule_ids, cancel_token)
        finally:
            self._is_running = False

    async def _build(
        self,
        start_year: int,
        start_month: int,
        rule_ids: Iterable[str] | None,
        cancel_token: CancellationToken | None,
    ) -> PreviewResult:
        today = self._today or date.today()
        months = expand_months(start_year, start_month, today)
        selected = self._select_rules(rule_ids)
        report_year = today.year - 1

        self._logger.info(
            "scan_started",
            rules=len(selected),
            months=len(months),
            start=months[0].reporting_month,
        )
        snapshot = await self._load_snapshot()

        result = PreviewResult(total_clients=len(snapshot.clients))
        seen: set[str] = set()
        for index, client in enumerate(snapshot.clients):
            if cancel_token is not None and cancel_token.cancelled:
                result.cancelled = True
                self._logger.info("scan_cancelled", clients_scanned=index)
                break
            if index and index % self._yield_every == 0:
                await asyncio.sleep(0)
            if not client.service_types:
                continue

            services = effective_services(
                client.service_types, self._rules, client.business_type
            )
            rules = matching_report_rules(selected, services, client.business_type)
            for rule in rules:
                for item in self._items_for_rule(rule, client, months, report_year, snapshot):
                    if item.id in seen:
                        continue
                    seen.add(item.id)
                    result.items.append(item)

        self._logger.info(
            "scan_completed",
            items=len(result.items),
            total_clients=result.total_clients,
            affected_clients=result.affected_clients,
        )
        return result

    def _items_for_rule(
        self,
        rule: ReportAutoCreateRule,
        client: ClientProfile,
        months: list[MonthSpan],
        report_year: int,
        snapshot: _Snapshot,
    ) -> Iterator[PreviewItem]:
        if isinstance(rule, PeriodicReportRule):
            yield from self._periodic_report_items(rule, client, report_year, snapshot.existence)
        elif isinstance(rule, BalanceSheetRule):
            yield from self._balance_sheet_items(rule, client, report_year, snapshot.existence)
        elif isinstance(rule, ReconciliationRule):
            accounts = snapshot.accounts_by_client.get(client.id, [])
            yield from self._reconciliation_items(rule, client, months, accounts, snapshot.existence)
        elif isinstance(rule, TaskRule):
            yield from self._task_items(rule, client, months, snapshot.existence)

    # =========================================================================
    # PER-TARGET EXPANSION
    # =========================================================================

    def _periodic_report_items(
        self,
        rule: PeriodicReportRule,
        client: ClientProfile,
        report_year: int,
        existence: ExistenceChecker,
    ) -> Iterator[PreviewItem]:
        year = str(report_year)
        for report_type, periods in rule.report_types.items():
            for period in periods:
                if existence.periodic_report_exists(client.id, year, report_type.value, period.value):
                    continue
                yield PreviewItem(
                    id=f"{client.id}_pr_{report_type.value}_{period.value}",
                    rule_id=rule.id,
                    rule_name=rule.name,
                    client_id=client.id,
                    client_name=client.name,
                    entity=TargetEntity.PERIODIC_REPORT,
                    entity_label=ITEM_LABELS[TargetEntity.PERIODIC_REPORT],
                    description=(
                        f"{PERIODIC_REPORT_TYPE_LABELS[report_type]} - "
                        f"{REPORT_PERIOD_LABELS[period]} ({year})"
                    ),
                    create_data={
                        "client_id": client.id,
                        "client_name": client.name,
                        "report_year": year,
                        "report_type": report_type.value,
                        "period": period.value,
                        "target_date": periodic_report_target_date(report_year, period),
                        "status": RecordStatus.NOT_STARTED.value,
                        "reconciliation_steps": {
                            "payroll_vs_bookkeeping": False,
                            "periodic_vs_annual": False,
                        },
                        "submission_date": "",
                        "notes": "",
                    },
                )

    def _balance_sheet_items(
        self,
        rule: BalanceSheetRule,
        client: ClientProfile,
        report_year: int,
        existence: ExistenceChecker,
    ) -> Iterator[PreviewItem]:
        year = str(report_year)
        if existence.balance_sheet_exists(client.id, year):
            return
        yield PreviewItem(
            id=f"{client.id}_bs",
            rule_id=rule.id,
            rule_name=rule.name,
            client_id=client.id,
            client_name=client.name,
            entity=TargetEntity.BALANCE_SHEET,
            entity_label=ITEM_LABELS[TargetEntity.BALANCE_SHEET],
            description=f"מאזן {year}",
            create_data={
                "client_name": client.name,
                "client_id": client.id,
                "tax_year": year,
                "current_stage": "closing_operations",
                "target_date": f"{report_year + 1}-05-31",
                "folder_link": "",
                "notes": "",
            },
        )

    def _reconciliation_items(
        self,
        rule: ReconciliationRule,
        client: ClientProfile,
        months: list[MonthSpan],
        accounts: list[dict[str, Any]],
        existence: ExistenceChecker,
    ) -> Iterator[PreviewItem]:
        for span in months:
            period = span.label
            for account in accounts:
                account_id = str(account.get("id"))
                if existence.reconciliation_exists(client.id, account_id, period):
                    continue
                account_name = account.get("account_name") or account.get("bank_name") or ""
                yield PreviewItem(
                    id=f"{client.id}_rec_{account_id}_{span.year}_{span.month}",
                    rule_id=rule.id,
                    rule_name=rule.name,
                    client_id=client.id,
                    client_name=client.name,
                    entity=TargetEntity.ACCOUNT_RECONCILIATION,
                    entity_label=ITEM_LABELS[TargetEntity.ACCOUNT_RECONCILIATION],
                    description=f"{account_name or 'חשבון'} - {period}",
                    create_data={
                        "client_id": client.id,
                        "client_name": client.name,
                        "client_account_id": account_id,
                        "account_name": account_name,
                        "period": period,
                        "reconciliation_type": "bank_credit",
                        "status": RecordStatus.NOT_STARTED.value,
                        "due_date": span.due_date_str,
                        "notes": "",
                    },
                )

    def _task_items(
        self,
        rule: TaskRule,
        client: ClientProfile,
        months: list[MonthSpan],
        existence: ExistenceChecker,
    ) -> Iterator[PreviewItem]:
        for span in months:
            for category in rule.task_categories:
                if not is_month_valid(category, span.month, client.reporting_info):
                    continue

                cycles = 1
                if category in CYCLE_CATEGORIES:
                    cycles = client.cycles(CYCLE_CATEGORIES[category])
                due_date = self._due_dates.for_task(
                    span, category, rule.due_day_of_month, client.payment_method
                )

                for cycle in range(1, cycles + 1):
                    if existence.task_exists(client, category, span, cycle):
                        continue
                    item_id = f"{client.id}_task_{category.value}_{span.year}_{span.month}"
                    title = f"{category.value} - {client.name} - {span.label}"
                    description = f"{category.value} - {span.label}"
                    if cycles > 1:
                        item_id = f"{item_id}_c{cycle}"
                        title = f"{title} (מחזור {cycle})"
                        description = f"{description} (מחזור {cycle})"
                    yield PreviewItem(
                        id=item_id,
                        rule_id=rule.id,
                        rule_name=rule.name,
                        client_id=client.id,
                        client_name=client.name,
                        entity=rule.target_entity,
                        entity_label=rule.target_entity.label,
                        description=description,
                        create_data={
                            "title": title,
                            "client_name": client.name,
                            "client_id": client.id,
                            "category": category.value,
                            "status": RecordStatus.NOT_STARTED.value,
                            "due_date": due_date.isoformat(),
                            "reporting_month": span.reporting_month,
                            "context": "work",
                            "process_steps": {},
                        },
                    )
