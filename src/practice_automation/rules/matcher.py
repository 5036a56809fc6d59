"""Pure rule-matching functions."""

from collections.abc import Collection, Iterable

from practice_automation.rules.models import (
    ReportAutoCreateRule,
    ReportRuleBase,
    Rule,
    RuleCondition,
    ServiceAutoLinkRule,
)


def condition_matches(condition: RuleCondition | None, business_type: str | None) -> bool:
    """An absent condition always matches."""
    if condition is None:
        return True
    return condition.matches(business_type)


def report_rule_applies(
    rule: ReportRuleBase, services: Collection[str], business_type: str | None
) -> bool:
    """A report rule applies iff enabled, any trigger service present, condition met."""
    if not rule.enabled:
        return False
    if not any(service.value in services for service in rule.trigger_services):
        return False
    return condition_matches(rule.condition, business_type)


def services_to_add(rule: ServiceAutoLinkRule, services: Collection[str]) -> list[str]:
    """Auto-add services of ``rule`` that the client does not have yet."""
    return [s.value for s in rule.auto_add_services if s.value not in services]


def link_rule_applies(
    rule: ServiceAutoLinkRule, services: Collection[str], business_type: str | None
) -> bool:
    if not rule.enabled:
        return False
    if rule.trigger_service.value not in services:
        return False
    if not condition_matches(rule.condition, business_type):
        return False
    return bool(services_to_add(rule, services))


def matching_report_rules(
    rules: Iterable[Rule], services: Collection[str], business_type: str | None
) -> list[ReportAutoCreateRule]:
    """Enabled report rules that apply to a client, in rule order."""
    if not services:
        return []
    return [
        rule  # type: ignore[misc]
        for rule in rules
        if isinstance(rule, ReportRuleBase) and report_rule_applies(rule, services, business_type)
    ]


def matching_link_rules(
    rules: Iterable[Rule], services: Collection[str], business_type: str | None
) -> list[ServiceAutoLinkRule]:
    """Enabled auto-link rules that would add at least one service to a client."""
    return [
        rule
        for rule in rules
        if isinstance(rule, ServiceAutoLinkRule) and link_rule_applies(rule, services, business_type)
    ]


def auto_linked_services(
    rules: Iterable[Rule], trigger_service: str, business_type: str | None
) -> list[str]:
    """Services to select alongside ``trigger_service`` when it is toggled on.

    Deduplicated, in rule order. Used by client editors before saving.
    """
    added: list[str] = []
    for rule in rules:
        if not isinstance(rule, ServiceAutoLinkRule) or not rule.enabled:
            continue
        if rule.trigger_service.value != trigger_service:
            continue
        if not condition_matches(rule.condition, business_type):
            continue
        for service in rule.auto_add_services:
            if service.value not in added:
                added.append(service.value)
    return added


def auto_link_parents(rules: Iterable[Rule]) -> dict[str, set[str]]:
    """Map each auto-linked child service to the triggers that add it."""
    parents: dict[str, set[str]] = {}
    for rule in rules:
        if not isinstance(rule, ServiceAutoLinkRule) or not rule.enabled:
            continue
        for child in rule.auto_add_services:
            parents.setdefault(child.value, set()).add(rule.trigger_service.value)
    return parents


def orphaned_services(services: Iterable[str], rules: Iterable[Rule]) -> set[str]:
    """Declared auto-linked children none of whose parents is declared."""
    declared = set(services)
    parents = auto_link_parents(rules)
    return {
        service
        for service in declared
        if service in parents and not (parents[service] & declared)
    }


def effective_services(
    services: Iterable[str], rules: Iterable[Rule], business_type: str | None = None
) -> set[str]:
    """Services a client effectively holds.

    Declared services plus the children auto-linked from declared triggers,
    minus declared children none of whose parents is declared.
    """
    rules = list(rules)
    declared = set(services)
    linked: set[str] = set()
    for rule in rules:
        if not isinstance(rule, ServiceAutoLinkRule) or not rule.enabled:
            continue
        if rule.trigger_service.value not in declared:
            continue
        if condition_matches(rule.condition, business_type):
            linked.update(s.value for s in rule.auto_add_services)
    return (declared | linked) - orphaned_services(declared, rules)
