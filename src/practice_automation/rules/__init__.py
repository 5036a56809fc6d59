"""Rule definitions, lookup tables, matching and persistence."""

from practice_automation.rules.matcher import (
    auto_link_parents,
    auto_linked_services,
    effective_services,
    matching_link_rules,
    matching_report_rules,
    orphaned_services,
)
from practice_automation.rules.models import (
    BalanceSheetRule,
    PeriodicReportRule,
    ReconciliationRule,
    ReportAutoCreateRule,
    Rule,
    RuleCondition,
    RuleType,
    ServiceAutoLinkRule,
    TaskRule,
    parse_rule,
)
from practice_automation.rules.store import RuleStore, default_rules, validate_rules

__all__ = [
    "BalanceSheetRule",
    "PeriodicReportRule",
    "ReconciliationRule",
    "ReportAutoCreateRule",
    "Rule",
    "RuleCondition",
    "RuleStore",
    "RuleType",
    "ServiceAutoLinkRule",
    "TaskRule",
    "auto_link_parents",
    "auto_linked_services",
    "default_rules",
    "effective_services",
    "matching_link_rules",
    "matching_report_rules",
    "orphaned_services",
    "parse_rule",
    "validate_rules",
]
