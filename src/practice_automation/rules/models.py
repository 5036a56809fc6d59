"""Typed automation rule definitions.

Rules are stored as plain documents. A ``report_auto_create`` document only has
meaningful fields for its ``target_entity``, so each target gets its own model
carrying only its own fields; anything else in the document is dropped on
parse and never interpreted.
"""

from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from practice_automation.errors import RuleValidationError
from practice_automation.rules.catalog import (
    TASK_BOARD_CATEGORIES,
    BusinessType,
    PeriodicReportType,
    ReportPeriod,
    Service,
    TargetEntity,
    TaskCategory,
)


class RuleType(str, Enum):
    SERVICE_AUTO_LINK = "service_auto_link"
    REPORT_AUTO_CREATE = "report_auto_create"


class RuleCondition(BaseModel):
    """Optional applicability condition. Only business_type is supported."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    field: Literal["business_type"] = "business_type"
    value: BusinessType

    def matches(self, business_type: str | None) -> bool:
        return (business_type or "") == self.value.value


class BaseRule(BaseModel):
    """Fields shared by every rule variant."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    enabled: bool = True
    condition: RuleCondition | None = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be blank")
        return value

    def to_document(self) -> dict[str, Any]:
        """Serialize to the stored document shape."""
        return self.model_dump(mode="json")


class ServiceAutoLinkRule(BaseRule):
    """Selecting ``trigger_service`` on a client also selects ``auto_add_services``."""

    type: Literal["service_auto_link"] = "service_auto_link"
    trigger_service: Service
    auto_add_services: tuple[Service, ...] = Field(min_length=1)

    @model_validator(mode="after")
    def _no_self_link(self) -> "ServiceAutoLinkRule":
        if self.trigger_service in self.auto_add_services:
            raise ValueError("auto_add_services must not contain the trigger service")
        return self


class ReportRuleBase(BaseRule):
    """A client holding any of ``trigger_services`` gets records on ``target_entity``."""

    type: Literal["report_auto_create"] = "report_auto_create"
    trigger_services: tuple[Service, ...] = Field(min_length=1)
    target_entity: TargetEntity


class PeriodicReportRule(ReportRuleBase):
    target_entity: TargetEntity = TargetEntity.PERIODIC_REPORT
    report_types: dict[PeriodicReportType, tuple[ReportPeriod, ...]] = Field(min_length=1)

    @field_validator("target_entity")
    @classmethod
    def _check_target(cls, value: TargetEntity) -> TargetEntity:
        if value is not TargetEntity.PERIODIC_REPORT:
            raise ValueError("target_entity must be PeriodicReport")
        return value

    @field_validator("report_types")
    @classmethod
    def _periods_not_empty(
        cls, value: dict[PeriodicReportType, tuple[ReportPeriod, ...]]
    ) -> dict[PeriodicReportType, tuple[ReportPeriod, ...]]:
        for report_type, periods in value.items():
            if not periods:
                raise ValueError(f"report type {report_type.value!r} has no periods")
        return value


class BalanceSheetRule(ReportRuleBase):
    target_entity: TargetEntity = TargetEntity.BALANCE_SHEET

    @field_validator("target_entity")
    @classmethod
    def _check_target(cls, value: TargetEntity) -> TargetEntity:
        if value is not TargetEntity.BALANCE_SHEET:
            raise ValueError("target_entity must be BalanceSheet")
        return value


class ReconciliationRule(ReportRuleBase):
    target_entity: TargetEntity = TargetEntity.ACCOUNT_RECONCILIATION

    @field_validator("target_entity")
    @classmethod
    def _check_target(cls, value: TargetEntity) -> TargetEntity:
        if value is not TargetEntity.ACCOUNT_RECONCILIATION:
            raise ValueError("target_entity must be AccountReconciliation")
        return value


class TaskRule(ReportRuleBase):
    task_categories: tuple[TaskCategory, ...] = Field(min_length=1)
    due_day_of_month: int | None = Field(default=None, ge=1, le=31)

    @field_validator("task_categories", mode="before")
    @classmethod
    def _normalize_categories(cls, value: Any) -> Any:
        # Accept gershayim spellings and legacy aliases of category names.
        if isinstance(value, (list, tuple)):
            return tuple(TaskCategory(v) if isinstance(v, str) else v for v in value)
        return value

    @field_validator("target_entity")
    @classmethod
    def _check_target(cls, value: TargetEntity) -> TargetEntity:
        if not value.is_task_board:
            raise ValueError("target_entity must be a Task_* board")
        return value

    @model_validator(mode="after")
    def _categories_on_board(self) -> "TaskRule":
        allowed = TASK_BOARD_CATEGORIES[self.target_entity]
        unknown = [c.value for c in self.task_categories if c not in allowed]
        if unknown:
            raise ValueError(
                f"categories {unknown} are not on board {self.target_entity.value}"
            )
        return self


ReportAutoCreateRule = Union[PeriodicReportRule, BalanceSheetRule, ReconciliationRule, TaskRule]
Rule = Union[ServiceAutoLinkRule, ReportAutoCreateRule]

_REPORT_RULE_MODELS: dict[TargetEntity, type[ReportRuleBase]] = {
    TargetEntity.PERIODIC_REPORT: PeriodicReportRule,
    TargetEntity.BALANCE_SHEET: BalanceSheetRule,
    TargetEntity.ACCOUNT_RECONCILIATION: ReconciliationRule,
}


def _model_for(data: dict[str, Any]) -> type[BaseRule]:
    rule_type = data.get("type")
    if rule_type == RuleType.SERVICE_AUTO_LINK.value:
        return ServiceAutoLinkRule
    if rule_type != RuleType.REPORT_AUTO_CREATE.value:
        raise RuleValidationError(f"Unknown rule type: {rule_type!r}", rule_id=data.get("id"))

    raw_target = data.get("target_entity")
    try:
        target = TargetEntity(raw_target)
    except ValueError as e:
        raise RuleValidationError(
            f"Unknown target_entity: {raw_target!r}", rule_id=data.get("id")
        ) from e
    if target.is_task_board:
        return TaskRule
    return _REPORT_RULE_MODELS[target]


def parse_rule(data: "Rule | dict[str, Any]") -> "Rule":
    """Build a typed rule from a stored document.

    Args:
        data: Rule document (or an already-typed rule, returned unchanged).

    Returns:
        The rule variant matching ``type``/``target_entity``.

    Raises:
        RuleValidationError: If the document is malformed for its variant.
    """
    if isinstance(data, BaseRule):
        return data  # type: ignore[return-value]
    if not isinstance(data, dict):
        raise RuleValidationError("Rule document must be a mapping")

    model = _model_for(data)
    try:
        return model.model_validate(data)  # type: ignore[return-value]
    except ValidationError as e:
        raise RuleValidationError(
            f"Invalid rule {data.get('id')!r}: {e.error_count()} error(s)",
            rule_id=data.get("id"),
            errors=e.errors(include_url=False),
        ) from e
