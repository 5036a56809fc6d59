"""Tests for duplicate detection."""

from practice_automation.clients import ClientProfile
from practice_automation.engine.existence import ExistenceChecker, PeriodicReportDedupPolicy
from practice_automation.periods import MonthSpan
from practice_automation.rules.catalog import TaskCategory

CLIENT = ClientProfile(
    id="c1",
    name="לקוח א",
    status="active",
    service_types=("payroll",),
    business_type="company",
)
JANUARY = MonthSpan(2026, 0)


def _task(**overrides):
    task = {
        "id": "t1",
        "client_id": "c1",
        "client_name": "לקוח א",
        "category": "שכר",
        "status": "not_started",
        "due_date": "2026-01-15",
    }
    task.update(overrides)
    return task


class TestPeriodicReports:
    """Tests for the periodic report dedup policies."""

    REPORTS = [
        {
            "client_id": "c1",
            "report_year": "2025",
            "report_type": "bituach_leumi_126",
            "period": "h1",
        }
    ]

    def test_any_report_suppresses_year(self):
        checker = ExistenceChecker(periodic_reports=self.REPORTS)

        assert checker.periodic_report_exists("c1", "2025", "deductions_126_wage", "annual")
        assert not checker.periodic_report_exists("c1", "2024", "bituach_leumi_126", "h1")
        assert not checker.periodic_report_exists("c2", "2025", "bituach_leumi_126", "h1")

    def test_per_combination_policy(self):
        checker = ExistenceChecker(
            periodic_reports=self.REPORTS,
            policy=PeriodicReportDedupPolicy.PER_COMBINATION_DEDUP,
        )

        assert checker.periodic_report_exists("c1", "2025", "bituach_leumi_126", "h1")
        assert not checker.periodic_report_exists("c1", "2025", "bituach_leumi_126", "h2")

    def test_numeric_report_year_matches(self):
        checker = ExistenceChecker(
            periodic_reports=[{**self.REPORTS[0], "report_year": 2025}]
        )

        assert checker.periodic_report_exists("c1", "2025", "bituach_leumi_126", "h1")


class TestOtherRecords:
    def test_balance_sheet(self):
        checker = ExistenceChecker(balance_sheets=[{"client_id": "c1", "tax_year": 2025}])

        assert checker.balance_sheet_exists("c1", "2025")
        assert not checker.balance_sheet_exists("c1", "2024")

    def test_reconciliation(self):
        checker = ExistenceChecker(
            reconciliations=[
                {"client_id": "c1", "client_account_id": "acc1", "period": "ינואר 2026"}
            ]
        )

        assert checker.reconciliation_exists("c1", "acc1", "ינואר 2026")
        assert not checker.reconciliation_exists("c1", "acc2", "ינואר 2026")


class TestTasks:
    """Tests for task dedup by client, category and due month."""

    def test_task_in_month_exists(self):
        checker = ExistenceChecker(tasks=[_task()])

        assert checker.task_exists(CLIENT, TaskCategory.PAYROLL, JANUARY)
        assert not checker.task_exists(CLIENT, TaskCategory.PAYROLL, MonthSpan(2026, 1))
        assert not checker.task_exists(CLIENT, TaskCategory.SOCIAL_SECURITY, JANUARY)

    def test_not_relevant_task_does_not_block(self):
        checker = ExistenceChecker(tasks=[_task(status="not_relevant")])

        assert not checker.task_exists(CLIENT, TaskCategory.PAYROLL, JANUARY)

    def test_completed_task_still_blocks(self):
        checker = ExistenceChecker(tasks=[_task(status="completed")])

        assert checker.task_exists(CLIENT, TaskCategory.PAYROLL, JANUARY)

    def test_legacy_task_matched_by_name(self):
        checker = ExistenceChecker(tasks=[_task(client_id=None)])

        assert checker.task_exists(CLIENT, TaskCategory.PAYROLL, JANUARY)

    def test_task_counted_once_when_id_and_name_match(self):
        checker = ExistenceChecker(tasks=[_task()])

        assert checker.active_task_count(CLIENT, TaskCategory.PAYROLL, JANUARY) == 1

    def test_same_named_client_task_does_not_block(self):
        checker = ExistenceChecker(tasks=[_task(client_id="c2")])

        assert not checker.task_exists(CLIENT, TaskCategory.PAYROLL, JANUARY)

    def test_category_alias_matches(self):
        checker = ExistenceChecker(tasks=[_task(category='מ"ה ניכויים')])

        assert checker.task_exists(CLIENT, TaskCategory.DEDUCTIONS, JANUARY)

    def test_cycles(self):
        checker = ExistenceChecker(
            tasks=[_task(category='מס"ב ספקים'), _task(id="t2", category='מס"ב ספקים', due_date="2026-01-25")]
        )

        assert checker.task_exists(CLIENT, TaskCategory.MASAV_SUPPLIERS, JANUARY, cycle=2)
        assert not checker.task_exists(CLIENT, TaskCategory.MASAV_SUPPLIERS, JANUARY, cycle=3)
