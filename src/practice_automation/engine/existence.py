"""Deduplication of candidate records against records that already exist."""

from collections import defaultdict
from collections.abc import Iterable
from enum import Enum
from typing import Any

from practice_automation.clients import ClientProfile
from practice_automation.periods import MonthSpan, parse_date
from practice_automation.rules.catalog import RecordStatus, TaskCategory


class PeriodicReportDedupPolicy(str, Enum):
    """How existing periodic reports suppress new ones for a client-year.

    ANY_EXISTS_SUPPRESSES_ALL: one report for the year blocks every
    configured type/period. PER_COMBINATION_DEDUP: only the exact
    (type, period) already stored is skipped.
    """

    ANY_EXISTS_SUPPRESSES_ALL = "any_exists_suppresses_all"
    PER_COMBINATION_DEDUP = "per_combination_dedup"


def _category_of(record: dict[str, Any]) -> TaskCategory | None:
    try:
        return TaskCategory(record.get("category"))
    except ValueError:
        return None


class ExistenceChecker:
    """Answers "does this record already exist" from records loaded once per scan."""

    def __init__(
        self,
        periodic_reports: Iterable[dict[str, Any]] = (),
        balance_sheets: Iterable[dict[str, Any]] = (),
        reconciliations: Iterable[dict[str, Any]] = (),
        tasks: Iterable[dict[str, Any]] = (),
        policy: PeriodicReportDedupPolicy = PeriodicReportDedupPolicy.ANY_EXISTS_SUPPRESSES_ALL,
    ):
        self.policy = policy

        self._report_years: set[tuple[Any, str]] = set()
        self._report_combinations: set[tuple[Any, str, Any, Any]] = set()
        for report in periodic_reports:
            year = str(report.get("report_year"))
            self._report_years.add((report.get("client_id"), year))
            self._report_combinations.add(
                (report.get("client_id"), year, report.get("report_type"), report.get("period"))
            )

        self._balance_sheets = {
            (sheet.get("client_id"), str(sheet.get("tax_year"))) for sheet in balance_sheets
        }
        self._reconciliations = {
            (rec.get("client_id"), rec.get("client_account_id"), rec.get("period"))
            for rec in reconciliations
        }

        # Active tasks only: invalidated tasks must not block regeneration.
        self._tasks_by_client_id: dict[Any, list[dict[str, Any]]] = defaultdict(list)
        self._tasks_by_client_name: dict[Any, list[dict[str, Any]]] = defaultdict(list)
        for task in tasks:
            if task.get("status") == RecordStatus.NOT_RELEVANT.value:
                continue
            if task.get("client_id"):
                self._tasks_by_client_id[task["client_id"]].append(task)
            elif task.get("client_name"):
                self._tasks_by_client_name[task["client_name"]].append(task)

    def periodic_report_exists(
        self, client_id: str, report_year: str, report_type: str, period: str
    ) -> bool:
        if self.policy is PeriodicReportDedupPolicy.ANY_EXISTS_SUPPRESSES_ALL:
            return (client_id, report_year) in self._report_years
        return (client_id, report_year, report_type, period) in self._report_combinations

    def balance_sheet_exists(self, client_id: str, tax_year: str) -> bool:
        return (client_id, tax_year) in self._balance_sheets

    def reconciliation_exists(self, client_id: str, account_id: str, period_label: str) -> bool:
        return (client_id, account_id, period_label) in self._reconciliations

    def active_task_count(self, client: ClientProfile, category: TaskCategory, span: MonthSpan) -> int:
        """Active tasks of a client in ``category`` due within ``span``."""
        candidates: dict[int, dict[str, Any]] = {}
        for task in self._tasks_by_client_id.get(client.id, ()):
            candidates[id(task)] = task
        for task in self._tasks_by_client_name.get(client.name, ()):
            candidates[id(task)] = task

        count = 0
        for task in candidates.values():
            if _category_of(task) is not category:
                continue
            due = parse_date(task.get("due_date"))
            if due is not None and span.contains(due):
                count += 1
        return count

    def task_exists(
        self, client: ClientProfile, category: TaskCategory, span: MonthSpan, cycle: int = 1
    ) -> bool:
        """True when at least ``cycle`` active tasks already cover this month."""
        return self.active_task_count(client, category, span) >= cycle
