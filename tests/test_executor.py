"""Tests for committing preview items."""

from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from practice_automation.engine.concurrency import CancellationToken
from practice_automation.engine.executor import MISSING_ID_MESSAGE, Executor, ItemStatus
from practice_automation.engine.preview import PreviewBuilder
from practice_automation.errors import EntityStoreError, OperationInProgressError

TODAY = date(2026, 3, 20)


async def _scan(store, rules, start_month=0):
    return await PreviewBuilder(store, rules, today=TODAY).build(2026, start_month)


class TestExecutor:
    """Tests for Executor.execute."""

    @pytest.mark.asyncio
    async def test_creates_checked_items(self, store, make_client, payroll_link_rule, payroll_task_rule):
        store.collection("Client").seed([make_client(services=["payroll"])])
        preview = await _scan(store, [payroll_link_rule, payroll_task_rule])

        result = await Executor(store).execute(preview)

        assert result.created == 9
        assert result.errors == result.warnings == 0
        assert result.clients == 1
        assert len(store.collection("Task")) == 9
        assert all(detail.status is ItemStatus.SUCCESS for detail in result.details)
        assert result.details[0].record_id == "task-000001"

    @pytest.mark.asyncio
    async def test_rescan_after_execution_finds_nothing(self, store, make_client, rules):
        """A second run over the same range creates no duplicates."""
        store.collection("Client").seed([
            make_client(services=["payroll", "bookkeeping", "vat_reporting"])
        ])
        store.collection("ClientAccount").seed([{"id": "acc1", "client_id": "c1"}])
        first = await _scan(store, rules)
        await Executor(store).execute(first)

        second = await _scan(store, rules)

        assert len(first.items) > 0
        assert second.items == []
        assert len(store.collection("PeriodicReport")) == 4
        assert len(store.collection("BalanceSheet")) == 1
        assert len(store.collection("AccountReconciliation")) == 3

    @pytest.mark.asyncio
    async def test_invalidated_tasks_are_regenerated(
        self, store, make_client, payroll_link_rule, payroll_task_rule
    ):
        store.collection("Client").seed([make_client(services=["payroll"])])
        rules = [payroll_link_rule, payroll_task_rule]
        await Executor(store).execute(await _scan(store, rules))

        tasks = store.collection("Task")
        for task in tasks.all():
            await tasks.update(task["id"], {"status": "not_relevant"})

        rescan = await _scan(store, rules)

        assert len(rescan.items) == 9

    @pytest.mark.asyncio
    async def test_unchecked_items_skipped(self, store, make_client, payroll_link_rule, payroll_task_rule):
        store.collection("Client").seed([make_client(services=["payroll"])])
        preview = await _scan(store, [payroll_link_rule, payroll_task_rule], start_month=2)
        preview.toggle("c1_task_שכר_2026_2")

        result = await Executor(store).execute(preview)

        assert result.created == 2
        assert "c1_task_שכר_2026_2" not in {d.item_id for d in result.details}

    @pytest.mark.asyncio
    async def test_nothing_checked(self, store):
        result = await Executor(store).execute([])

        assert result.created == 0
        assert result.details == []

    @pytest.mark.asyncio
    async def test_failures_recorded_in_order(
        self, store, make_client, payroll_link_rule, payroll_task_rule
    ):
        """A failing item does not stop the batch; outcomes keep item order."""
        store.collection("Client").seed([make_client(services=["payroll"])])
        preview = await _scan(store, [payroll_link_rule, payroll_task_rule], start_month=2)
        tasks = store.collection("Task")
        create = AsyncMock(side_effect=[{"id": "t1"}, EntityStoreError("server error"), {}])

        with patch.object(tasks, "create", create):
            result = await Executor(store).execute(preview)

        assert [d.status for d in result.details] == [
            ItemStatus.SUCCESS,
            ItemStatus.ERROR,
            ItemStatus.WARNING,
        ]
        assert result.details[1].message == "server error"
        assert result.details[2].message == MISSING_ID_MESSAGE
        assert (result.created, result.errors, result.warnings) == (1, 1, 1)
        assert create.await_count == 3

    @pytest.mark.asyncio
    async def test_parallel_execution_keeps_order(
        self, store, make_client, payroll_link_rule, payroll_task_rule
    ):
        store.collection("Client").seed([make_client(services=["payroll"])])
        preview = await _scan(store, [payroll_link_rule, payroll_task_rule])

        result = await Executor(store, max_concurrency=4).execute(preview)

        assert result.created == 9
        assert [d.item_id for d in result.details] == [item.id for item in preview.items]

    @pytest.mark.asyncio
    async def test_cancelled_batch(self, store, make_client, payroll_link_rule, payroll_task_rule):
        store.collection("Client").seed([make_client(services=["payroll"])])
        preview = await _scan(store, [payroll_link_rule, payroll_task_rule])
        token = CancellationToken()
        token.cancel()

        result = await Executor(store).execute(preview, cancel_token=token)

        assert result.cancelled is True
        assert result.created == 0
        assert len(store.collection("Task")) == 0

    @pytest.mark.asyncio
    async def test_cancelled_batch_counts_attempted_clients(
        self, store, make_client, payroll_link_rule, payroll_task_rule
    ):
        """Clients whose items were never started are not counted."""
        store.collection("Client").seed([
            make_client(client_id="c1", services=["payroll"]),
            make_client(client_id="c2", name="לקוח ב", services=["payroll"]),
        ])
        preview = await _scan(store, [payroll_link_rule, payroll_task_rule], start_month=2)
        token = CancellationToken()

        def _create_then_cancel(data):
            token.cancel()
            return {"id": "t1"}

        tasks = store.collection("Task")
        with patch.object(tasks, "create", AsyncMock(side_effect=_create_then_cancel)):
            result = await Executor(store, max_concurrency=1).execute(
                preview, cancel_token=token
            )

        assert {item.client_id for item in preview.items} == {"c1", "c2"}
        assert result.cancelled is True
        assert result.created == 1
        assert result.clients == 1
        assert result.details[0].client_id == "c1"

    @pytest.mark.asyncio
    async def test_concurrent_execution_rejected(self, store):
        executor = Executor(store)
        executor._is_running = True

        with pytest.raises(OperationInProgressError):
            await executor.execute([])
