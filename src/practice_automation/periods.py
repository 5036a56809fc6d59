"""Calendar month ranges and reporting-frequency arithmetic.

Months are 0-based throughout (January = 0) to match the frequency tables.
"""

import calendar
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any

from practice_automation.rules.catalog import (
    CATEGORY_FREQUENCY_FIELD,
    Frequency,
    TaskCategory,
)

HEB_MONTHS = (
    "ינואר",
    "פברואר",
    "מרץ",
    "אפריל",
    "מאי",
    "יוני",
    "יולי",
    "אוגוסט",
    "ספטמבר",
    "אוקטובר",
    "נובמבר",
    "דצמבר",
)

_VALID_MONTHS: dict[Frequency, frozenset[int]] = {
    Frequency.MONTHLY: frozenset(range(12)),
    Frequency.BIMONTHLY: frozenset(range(0, 12, 2)),
    Frequency.QUARTERLY: frozenset({2, 5, 8, 11}),
    Frequency.SEMI_ANNUAL: frozenset({5, 11}),
    Frequency.NOT_APPLICABLE: frozenset(),
}

_REPORTING_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})")
_TITLE_MONTH_RE = re.compile(r"(" + "|".join(HEB_MONTHS) + r")\s+(\d{4})")


@dataclass(frozen=True)
class MonthSpan:
    """One calendar month in a scan range."""

    year: int
    month: int

    @property
    def days_in_month(self) -> int:
        return calendar.monthrange(self.year, self.month + 1)[1]

    @property
    def month_start(self) -> date:
        return date(self.year, self.month + 1, 1)

    @property
    def month_end(self) -> date:
        return date(self.year, self.month + 1, self.days_in_month)

    @property
    def label(self) -> str:
        """Hebrew month name and year, e.g. "ינואר 2026"."""
        return f"{HEB_MONTHS[self.month]} {self.year}"

    @property
    def due_date_str(self) -> str:
        return self.month_end.isoformat()

    @property
    def reporting_month(self) -> str:
        return f"{self.year:04d}-{self.month + 1:02d}"

    def contains(self, day: date) -> bool:
        return self.month_start <= day <= self.month_end


def expand_months(start_year: int, start_month: int, today: date | None = None) -> list[MonthSpan]:
    """Every month from the start month through the current month, inclusive.

    Args:
        start_year: First year of the range.
        start_month: First month of the range, 0-based.
        today: Reference date; defaults to ``date.today()``.

    Raises:
        ValueError: If the month is outside 0..11 or the start is after today.
    """
    if not 0 <= start_month <= 11:
        raise ValueError(f"start_month must be 0..11, got {start_month}")
    today = today or date.today()
    end = (today.year, today.month - 1)
    if (start_year, start_month) > end:
        raise ValueError(
            f"start {start_year}-{start_month + 1:02d} is after the current month"
        )

    months: list[MonthSpan] = []
    year, month = start_year, start_month
    while (year, month) <= end:
        months.append(MonthSpan(year, month))
        month += 1
        if month > 11:
            month = 0
            year += 1
    return months


def valid_months(frequency: Frequency) -> frozenset[int]:
    """0-based month indices in which a report with this frequency is due."""
    return _VALID_MONTHS[frequency]


def parse_frequency(value: Any) -> Frequency:
    """Missing or unrecognized values are treated as monthly."""
    try:
        return Frequency(value)
    except ValueError:
        return Frequency.MONTHLY


def frequency_for_category(
    category: TaskCategory, reporting_info: Mapping[str, Any] | None
) -> Frequency | None:
    """The client's frequency for a category, or None if the category has none."""
    frequency_field = CATEGORY_FREQUENCY_FIELD.get(category)
    if frequency_field is None:
        return None
    return parse_frequency((reporting_info or {}).get(frequency_field.value))


def is_month_valid(
    category: TaskCategory, month: int, reporting_info: Mapping[str, Any] | None
) -> bool:
    """Whether ``category`` is due in 0-based ``month`` for this client."""
    frequency = frequency_for_category(category, reporting_info)
    if frequency is None:
        return True
    return month in valid_months(frequency)


def parse_date(value: Any) -> date | None:
    """Parse a date or an ISO date/datetime string; None when unparseable."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def report_month_from_due_date(due: date) -> tuple[int, int]:
    """Report month described by a deadline: the month before it.

    Returns:
        (year, 0-based month). A January deadline reports on December of the
        previous year.
    """
    if due.month == 1:
        return due.year - 1, 11
    return due.year, due.month - 2


def task_report_month(task: Mapping[str, Any]) -> tuple[int, int] | None:
    """Report month of a task as (year, 0-based month).

    Uses ``reporting_month`` when present, then a "<month> <year>" label in
    the title, then the month before ``due_date``.
    """
    reporting_month = task.get("reporting_month")
    if isinstance(reporting_month, str):
        match = _REPORTING_MONTH_RE.match(reporting_month)
        if match and 1 <= int(match.group(2)) <= 12:
            return int(match.group(1)), int(match.group(2)) - 1

    title = task.get("title")
    if isinstance(title, str):
        match = _TITLE_MONTH_RE.search(title)
        if match:
            return int(match.group(2)), HEB_MONTHS.index(match.group(1))

    due = parse_date(task.get("due_date"))
    if due is None:
        return None
    return report_month_from_due_date(due)
