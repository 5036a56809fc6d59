"""Pytest configuration and fixtures."""

import os
from datetime import date
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("ENTITY_API_URL", "http://localhost:8000")
os.environ.setdefault("ENTITY_API_KEY", "test-api-key")
os.environ.setdefault("ENTITY_MAX_RETRIES", "3")

from practice_automation.rules.models import ServiceAutoLinkRule, TaskRule  # noqa: E402
from practice_automation.rules.store import default_rules  # noqa: E402
from practice_automation.store.memory import InMemoryEntityStore  # noqa: E402

# Scans use a fixed "today" so month ranges are reproducible.
TODAY = date(2026, 3, 20)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def store():
    """Empty in-memory entity store."""
    return InMemoryEntityStore()


@pytest.fixture
def rules():
    """The packaged default rule set."""
    return default_rules()


@pytest.fixture
def payroll_link_rule():
    """payroll -> social_security + deductions."""
    return ServiceAutoLinkRule(
        id="payroll_auto_link",
        name="שכר → ביטוח לאומי + ניכויים",
        trigger_service="payroll",
        auto_add_services=["social_security", "deductions"],
    )


@pytest.fixture
def payroll_task_rule():
    """Payroll board rule due on the 15th."""
    return TaskRule(
        id="payroll_board",
        name="שכר → משימות שכר",
        trigger_services=["payroll"],
        target_entity="Task_payroll",
        task_categories=["שכר", "ביטוח לאומי", 'מ"ה ניכויים'],
        due_day_of_month=15,
    )


@pytest.fixture
def make_client():
    """Factory for raw client records."""

    def _make(
        client_id: str = "c1",
        name: str = "לקוח א",
        services: list[str] | None = None,
        business_type: str = "company",
        status: str = "active",
        reporting_info: dict | None = None,
        payment_method: str | None = None,
    ) -> dict:
        record = {
            "id": client_id,
            "name": name,
            "status": status,
            "service_types": list(services or []),
            "business_info": {"business_type": business_type},
            "reporting_info": dict(reporting_info or {}),
        }
        if payment_method:
            record["billing_info"] = {"payment_method": payment_method}
        return record

    return _make


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.request = AsyncMock()
    client.aclose = AsyncMock()
    return client
