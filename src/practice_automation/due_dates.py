"""Due-date calculation for generated tasks."""

from collections.abc import Mapping
from datetime import date
from enum import Enum

import structlog

from practice_automation.config.defaults_loader import load_default_due_dates
from practice_automation.periods import MonthSpan
from practice_automation.rules.catalog import TaskCategory
from practice_automation.store.base import EntityStore
from practice_automation.store.system_config import SystemConfigStore

logger = structlog.get_logger(__name__)

DUE_DATES_CONFIG_KEY = "service_due_dates"


class PaymentMethod(str, Enum):
    """How a client pays authorities: online or by bank slip."""

    DIGITAL = "digital"
    CHECK = "check"


class ServiceDueDates:
    """Per-category due days, optionally split by payment method.

    Each entry is either ``{"due_day": n}`` or ``{"digital": n, "check": m}``;
    any day may be None meaning "no override".
    """

    def __init__(
        self,
        table: Mapping[str, Mapping[str, int | None]] | None = None,
        config_id: str | None = None,
    ):
        source = load_default_due_dates() if table is None else table
        self._table: dict[str, dict[str, int | None]] = {}
        for category, entry in source.items():
            try:
                key = TaskCategory(category).value
            except ValueError:
                key = category
            self._table[key] = dict(entry)
        self.config_id = config_id

    def day_for(self, category: TaskCategory | str, payment_method: str | None = None) -> int | None:
        """Override day for a category; None when the category has no override."""
        try:
            key = TaskCategory(category).value
        except ValueError:
            key = str(category)
        entry = self._table.get(key)
        if not entry:
            return None
        if "digital" in entry or "check" in entry:
            method = payment_method or PaymentMethod.DIGITAL.value
            day = entry.get(method)
            return day if day is not None else entry.get("digital")
        return entry.get("due_day")

    def to_document(self) -> dict[str, dict[str, int | None]]:
        return {category: dict(entry) for category, entry in self._table.items()}

    @classmethod
    async def load(cls, store: EntityStore) -> "ServiceDueDates":
        """Load the stored table, seeding the defaults when none is stored."""
        configs = SystemConfigStore(store)
        config = await configs.find(DUE_DATES_CONFIG_KEY)
        data = (config or {}).get("data") or {}
        stored = data.get("dueDates") if isinstance(data, dict) else None
        if config is not None and isinstance(stored, dict):
            return cls(stored, config_id=config["id"])

        due_dates = cls()
        due_dates.config_id = await configs.save(
            DUE_DATES_CONFIG_KEY,
            config.get("id") if config else None,
            {"dueDates": due_dates.to_document()},
        )
        logger.info("default_due_dates_seeded", config_id=due_dates.config_id)
        return due_dates

    async def save(self, store: EntityStore) -> str | None:
        self.config_id = await SystemConfigStore(store).save(
            DUE_DATES_CONFIG_KEY, self.config_id, {"dueDates": self.to_document()}
        )
        return self.config_id


def calculate_due_date(
    span: MonthSpan,
    rule_due_day: int | None = None,
    category_due_day: int | None = None,
) -> date:
    """Due date within ``span``.

    The per-category day wins over the rule day; without either the month's
    last day is used. The day is clamped to the month length.
    """
    day = category_due_day or rule_due_day
    if not day:
        return span.month_end
    return date(span.year, span.month + 1, min(day, span.days_in_month))


class DueDateCalculator:
    """Resolves task due dates for one scan."""

    def __init__(self, due_dates: ServiceDueDates | None = None):
        self._due_dates = due_dates

    def for_task(
        self,
        span: MonthSpan,
        category: TaskCategory,
        rule_due_day: int | None = None,
        payment_method: str | None = None,
    ) -> date:
        category_day = None
        if self._due_dates is not None:
            category_day = self._due_dates.day_for(category, payment_method)
        return calculate_due_date(span, rule_due_day, category_day)
