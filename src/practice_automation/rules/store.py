"""Persistence of the automation rule set."""

from collections.abc import Iterable, Sequence
from typing import Any

import structlog

from practice_automation.config.defaults_loader import load_default_rules
from practice_automation.errors import RuleValidationError
from practice_automation.rules.models import Rule, parse_rule
from practice_automation.store.base import EntityStore
from practice_automation.store.system_config import SystemConfigStore

logger = structlog.get_logger(__name__)

RULES_CONFIG_KEY = "automation_rules"


def default_rules() -> list[Rule]:
    """The packaged default rule set, parsed and validated."""
    return validate_rules(load_default_rules())


def validate_rules(rules: Iterable["Rule | dict[str, Any]"]) -> list[Rule]:
    """Parse every rule and reject duplicate ids.

    Raises:
        RuleValidationError: On the first malformed rule or a repeated id.
    """
    parsed: list[Rule] = []
    seen: set[str] = set()
    for item in rules:
        rule = parse_rule(item)
        if rule.id in seen:
            raise RuleValidationError(f"Duplicate rule id: {rule.id!r}", rule_id=rule.id)
        seen.add(rule.id)
        parsed.append(rule)
    return parsed


class RuleStore:
    """Loads and saves the rule set as one SystemConfig document."""

    def __init__(self, store: EntityStore):
        self._configs = SystemConfigStore(store)
        self._logger = logger.bind(component="rule_store")

    async def load_rules(self) -> tuple[list[Rule], str | None]:
        """Load the stored rules, seeding the defaults when none are stored.

        Stored documents that no longer validate are skipped with a warning
        so one bad rule cannot disable the rest.

        Returns:
            Tuple of (rules, config_id).
        """
        config = await self._configs.find(RULES_CONFIG_KEY)
        data = (config or {}).get("data") or {}
        documents = data.get("rules") if isinstance(data, dict) else None

        if config is None or not isinstance(documents, list):
            seeded = default_rules()
            config_id = await self._configs.save(
                RULES_CONFIG_KEY,
                config.get("id") if config else None,
                {"rules": [rule.to_document() for rule in seeded]},
            )
            self._logger.info("default_rules_seeded", count=len(seeded), config_id=config_id)
            return seeded, config_id

        rules: list[Rule] = []
        for document in documents:
            try:
                rules.append(parse_rule(document))
            except RuleValidationError as e:
                self._logger.warning(
                    "stored_rule_invalid",
                    rule_id=e.rule_id,
                    error=str(e),
                    errors=e.errors,
                )
        self._logger.debug("rules_loaded", count=len(rules), config_id=config["id"])
        return rules, config["id"]

    async def save_rules(
        self, config_id: str | None, rules: Sequence["Rule | dict[str, Any]"]
    ) -> str | None:
        """Validate then persist the full rule set.

        Raises:
            RuleValidationError: If any rule is malformed. Nothing is written.
        """
        validated = validate_rules(rules)
        documents = [rule.to_document() for rule in validated]
        new_id = await self._configs.save(RULES_CONFIG_KEY, config_id, {"rules": documents})
        self._logger.info("rules_saved", count=len(documents), config_id=new_id)
        return new_id

