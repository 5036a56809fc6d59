"""Tests for the preview scan."""

from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from practice_automation.due_dates import ServiceDueDates
from practice_automation.engine.concurrency import CancellationToken
from practice_automation.engine.existence import PeriodicReportDedupPolicy
from practice_automation.engine.preview import PreviewBuilder, periodic_report_target_date
from practice_automation.errors import EntityStoreError, OperationInProgressError, ScanError
from practice_automation.rules.catalog import ReportPeriod, TargetEntity


TODAY = date(2026, 3, 20)


def _builder(store, rules, **kwargs):
    kwargs.setdefault("today", TODAY)
    return PreviewBuilder(store, rules, **kwargs)


class TestTaskGeneration:
    """Tests for task candidates."""

    @pytest.mark.asyncio
    async def test_auto_linked_categories_generated(
        self, store, make_client, payroll_link_rule, payroll_task_rule
    ):
        """A payroll-only client gets payroll, social security and deductions tasks."""
        store.collection("Client").seed([make_client(services=["payroll"])])
        builder = _builder(store, [payroll_link_rule, payroll_task_rule])

        result = await builder.build(2026, 0)

        assert len(result.items) == 9
        assert result.total_clients == 1
        assert result.affected_clients == 1
        due_dates = sorted({item.create_data["due_date"] for item in result.items})
        assert due_dates == ["2026-01-15", "2026-02-15", "2026-03-15"]
        categories = {item.create_data["category"] for item in result.items}
        assert categories == {"שכר", "ביטוח לאומי", "ניכויים"}

    @pytest.mark.asyncio
    async def test_task_item_shape(self, store, make_client, payroll_link_rule, payroll_task_rule):
        store.collection("Client").seed([make_client(services=["payroll"])])
        builder = _builder(store, [payroll_link_rule, payroll_task_rule])

        result = await builder.build(2026, 2)

        item = next(i for i in result.items if i.create_data["category"] == "שכר")
        assert item.id == "c1_task_שכר_2026_2"
        assert item.entity is TargetEntity.TASK_PAYROLL
        assert item.record_entity == "Task"
        assert item.description == "שכר - מרץ 2026"
        assert item.create_data == {
            "title": "שכר - לקוח א - מרץ 2026",
            "client_name": "לקוח א",
            "client_id": "c1",
            "category": "שכר",
            "status": "not_started",
            "due_date": "2026-03-15",
            "reporting_month": "2026-03",
            "context": "work",
            "process_steps": {},
        }

    @pytest.mark.asyncio
    async def test_scan_is_idempotent(self, store, make_client, payroll_link_rule, payroll_task_rule):
        store.collection("Client").seed([make_client(services=["payroll"])])
        builder = _builder(store, [payroll_link_rule, payroll_task_rule])

        first = await builder.build(2026, 0)
        second = await builder.build(2026, 0)

        assert [i.id for i in first.items] == [i.id for i in second.items]
        assert len(store.collection("Task")) == 0

    @pytest.mark.asyncio
    async def test_existing_task_suppresses_month(
        self, store, make_client, payroll_link_rule, payroll_task_rule
    ):
        store.collection("Client").seed([make_client(services=["payroll"])])
        store.collection("Task").seed([
            {
                "client_id": "c1",
                "client_name": "לקוח א",
                "category": "שכר",
                "status": "in_progress",
                "due_date": "2026-01-15",
            },
            {
                "client_id": "c1",
                "client_name": "לקוח א",
                "category": "ביטוח לאומי",
                "status": "not_relevant",
                "due_date": "2026-01-15",
            },
        ])
        builder = _builder(store, [payroll_link_rule, payroll_task_rule])

        result = await builder.build(2026, 0)

        ids = {item.id for item in result.items}
        assert len(result.items) == 8
        assert "c1_task_שכר_2026_0" not in ids
        assert "c1_task_ביטוח לאומי_2026_0" in ids

    @pytest.mark.asyncio
    async def test_bimonthly_skips_odd_months(self, store, make_client, rules):
        store.collection("Client").seed([
            make_client(
                services=["vat_reporting"],
                reporting_info={"vat_reporting_frequency": "bimonthly"},
            )
        ])

        result = await _builder(store, rules).build(2026, 0)

        assert [item.create_data["reporting_month"] for item in result.items] == [
            "2026-01",
            "2026-03",
        ]

    @pytest.mark.asyncio
    async def test_not_applicable_frequency_generates_nothing(self, store, make_client, rules):
        store.collection("Client").seed([
            make_client(
                services=["tax_advances"],
                reporting_info={"tax_advances_frequency": "not_applicable"},
            )
        ])

        result = await _builder(store, rules).build(2026, 0)

        assert result.items == []

    @pytest.mark.asyncio
    async def test_cycles_generate_numbered_items(self, store, make_client, rules):
        store.collection("Client").seed([
            make_client(services=["masav_suppliers"], reporting_info={"masav_suppliers_cycles": 2})
        ])
        store.collection("Task").seed([
            {
                "client_id": "c1",
                "client_name": "לקוח א",
                "category": 'מס"ב ספקים',
                "status": "completed",
                "due_date": "2026-01-10",
            }
        ])

        result = await _builder(store, rules).build(2026, 0)

        ids = [item.id for item in result.items]
        assert len(ids) == 5
        assert 'c1_task_מס"ב ספקים_2026_0_c1' not in ids
        assert 'c1_task_מס"ב ספקים_2026_0_c2' in ids
        assert result.items[0].create_data["title"].endswith("(מחזור 2)")

    @pytest.mark.asyncio
    async def test_due_date_table_and_payment_method(self, store, make_client, rules):
        store.collection("Client").seed([
            make_client(services=["vat_reporting"], payment_method="check")
        ])
        builder = _builder(store, rules, due_dates=ServiceDueDates())

        result = await builder.build(2026, 1)

        assert [item.create_data["due_date"] for item in result.items] == [
            "2026-02-15",
            "2026-03-15",
        ]

    @pytest.mark.asyncio
    async def test_default_due_date_is_month_end(self, store, make_client, rules):
        store.collection("Client").seed([make_client(services=["vat_reporting"])])

        result = await _builder(store, rules).build(2026, 1)

        assert [item.create_data["due_date"] for item in result.items] == [
            "2026-02-28",
            "2026-03-31",
        ]


class TestAnnualRecords:
    """Tests for periodic reports, balance sheets and reconciliations."""

    @pytest.mark.asyncio
    async def test_periodic_reports_for_previous_year(self, store, make_client, rules):
        store.collection("Client").seed([make_client(services=["payroll"])])

        result = await _builder(store, rules).build(
            2026, 2, rule_ids=["payroll_periodic_reports"]
        )

        assert len(result.items) == 4
        item = result.items[0]
        assert item.id == "c1_pr_bituach_leumi_126_h1"
        assert item.create_data["report_year"] == "2025"
        assert item.create_data["target_date"] == "2025-07-18"
        assert item.description == "ביטוח לאומי 126 - מחצית ראשונה (2025)"

    @pytest.mark.asyncio
    async def test_any_existing_report_suppresses_all(self, store, make_client, rules):
        store.collection("Client").seed([make_client(services=["payroll"])])
        store.collection("PeriodicReport").seed([
            {
                "client_id": "c1",
                "report_year": "2025",
                "report_type": "bituach_leumi_126",
                "period": "h1",
            }
        ])

        result = await _builder(store, rules).build(2026, 2, rule_ids=["payroll_periodic_reports"])

        assert result.items == []

    @pytest.mark.asyncio
    async def test_per_combination_policy_fills_gaps(self, store, make_client, rules):
        store.collection("Client").seed([make_client(services=["payroll"])])
        store.collection("PeriodicReport").seed([
            {
                "client_id": "c1",
                "report_year": "2025",
                "report_type": "bituach_leumi_126",
                "period": "h1",
            }
        ])
        builder = _builder(
            store, rules, dedup_policy=PeriodicReportDedupPolicy.PER_COMBINATION_DEDUP
        )

        result = await builder.build(2026, 2, rule_ids=["payroll_periodic_reports"])

        assert [item.id for item in result.items] == [
            "c1_pr_bituach_leumi_126_h2",
            "c1_pr_bituach_leumi_126_annual",
            "c1_pr_deductions_126_wage_annual",
        ]

    @pytest.mark.asyncio
    async def test_company_bookkeeping_records(self, store, make_client, rules):
        """A company with bookkeeping gets a balance sheet and monthly reconciliations."""
        store.collection("Client").seed([make_client(services=["bookkeeping"])])
        store.collection("ClientAccount").seed([
            {"id": "acc1", "client_id": "c1", "account_name": "לאומי עסקי"}
        ])

        result = await _builder(store, rules).build(2026, 0)

        assert [item.id for item in result.items] == [
            "c1_bs",
            "c1_rec_acc1_2026_0",
            "c1_rec_acc1_2026_1",
            "c1_rec_acc1_2026_2",
        ]
        balance_sheet = result.items[0].create_data
        assert balance_sheet["tax_year"] == "2025"
        assert balance_sheet["target_date"] == "2026-05-31"
        reconciliation = result.items[1].create_data
        assert reconciliation["period"] == "ינואר 2026"
        assert reconciliation["due_date"] == "2026-01-31"
        assert result.items[1].description == "לאומי עסקי - ינואר 2026"

    @pytest.mark.asyncio
    async def test_freelancer_gets_no_reconciliations(self, store, make_client, rules):
        store.collection("Client").seed([
            make_client(services=["bookkeeping"], business_type="freelancer")
        ])
        store.collection("ClientAccount").seed([{"id": "acc1", "client_id": "c1"}])

        result = await _builder(store, rules).build(2026, 0)

        assert [item.id for item in result.items] == ["c1_bs"]

    @pytest.mark.asyncio
    async def test_existing_balance_sheet_and_reconciliation(self, store, make_client, rules):
        store.collection("Client").seed([make_client(services=["bookkeeping"])])
        store.collection("ClientAccount").seed([{"id": "acc1", "client_id": "c1"}])
        store.collection("BalanceSheet").seed([{"client_id": "c1", "tax_year": "2025"}])
        store.collection("AccountReconciliation").seed([
            {"client_id": "c1", "client_account_id": "acc1", "period": "פברואר 2026"}
        ])

        result = await _builder(store, rules).build(2026, 0)

        assert [item.id for item in result.items] == ["c1_rec_acc1_2026_0", "c1_rec_acc1_2026_2"]

    def test_target_dates(self):
        assert periodic_report_target_date(2025, ReportPeriod.H1) == "2025-07-18"
        assert periodic_report_target_date(2025, ReportPeriod.H2) == "2026-01-18"
        assert periodic_report_target_date(2025, ReportPeriod.ANNUAL) == "2026-04-30"


class TestScanBehaviour:
    """Tests for client filtering, failures and selection."""

    @pytest.mark.asyncio
    async def test_inactive_and_unreadable_clients_skipped(self, store, make_client, rules):
        store.collection("Client").seed([
            make_client(client_id="c1", services=["vat_reporting"], status="inactive"),
            make_client(client_id="c2", name="", services=["vat_reporting"]),
            make_client(client_id="c3", name="לקוח ג", services=[]),
        ])

        result = await _builder(store, rules).build(2026, 0)

        assert result.items == []
        assert result.total_clients == 1

    @pytest.mark.asyncio
    async def test_load_failure_raises_scan_error(self, store, make_client, rules):
        store.collection("Client").seed([make_client(services=["payroll"])])
        tasks = store.collection("Task")

        with patch.object(tasks, "list", AsyncMock(side_effect=EntityStoreError("timeout"))):
            with pytest.raises(ScanError):
                await _builder(store, rules).build(2026, 0)

    @pytest.mark.asyncio
    async def test_rule_ids_filter(self, store, make_client, rules):
        store.collection("Client").seed([make_client(services=["payroll", "vat_reporting"])])

        result = await _builder(store, rules).build(2026, 0, rule_ids=["vat_monthly_task"])

        assert {item.rule_id for item in result.items} == {"vat_monthly_task"}
        assert len(result.items) == 3

    @pytest.mark.asyncio
    async def test_duplicate_items_across_rules_kept_once(
        self, store, make_client, rules, payroll_task_rule
    ):
        """Two rules producing the same category and month yield one item."""
        store.collection("Client").seed([make_client(services=["payroll"])])
        monthly_only = [rule for rule in rules if rule.id in ("payroll_auto_link", "payroll_monthly_task")]

        result = await _builder(store, [*monthly_only, payroll_task_rule]).build(2026, 0)

        assert len(result.items) == 9
        assert len({item.id for item in result.items}) == 9

    @pytest.mark.asyncio
    async def test_cancelled_scan(self, store, make_client, rules):
        store.collection("Client").seed([make_client(services=["payroll"])])
        token = CancellationToken()
        token.cancel()

        result = await _builder(store, rules).build(2026, 0, cancel_token=token)

        assert result.cancelled is True
        assert result.items == []

    @pytest.mark.asyncio
    async def test_concurrent_scan_rejected(self, store, rules):
        builder = _builder(store, rules)
        builder._is_running = True

        with pytest.raises(OperationInProgressError):
            await builder.build(2026, 0)

    @pytest.mark.asyncio
    async def test_future_start_rejected(self, store, rules):
        with pytest.raises(ValueError):
            await _builder(store, rules).build(2026, 5)

    @pytest.mark.asyncio
    async def test_selection_helpers(self, store, make_client, payroll_link_rule, payroll_task_rule):
        store.collection("Client").seed([
            make_client(client_id="c1", services=["payroll"]),
            make_client(client_id="c2", name="לקוח ב", services=["payroll"]),
        ])
        result = await _builder(store, [payroll_link_rule, payroll_task_rule]).build(2026, 2)

        assert len(result.checked_items()) == 6
        assert result.set_client_checked("c2", False) == 3
        assert result.toggle("c1_task_שכר_2026_2") is False
        assert len(result.checked_items()) == 2
        with pytest.raises(KeyError):
            result.toggle("missing")
