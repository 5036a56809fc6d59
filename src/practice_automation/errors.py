"""Exception hierarchy for the automation engine."""

from typing import Any


class AutomationError(Exception):
    """Base exception for automation engine errors."""


class RuleValidationError(AutomationError):
    """A rule definition is malformed and must not be saved or matched."""

    def __init__(
        self,
        message: str,
        rule_id: str | None = None,
        errors: list[dict[str, Any]] | None = None,
    ):
        super().__init__(message)
        self.rule_id = rule_id
        self.errors = errors or []


class ScanError(AutomationError):
    """Loading clients or existing records failed; the whole scan is aborted."""


class ItemCreationError(AutomationError):
    """Creating one preview item failed. Recorded per item, never aborts a batch."""

    def __init__(self, item_id: str, message: str):
        super().__init__(f"Item '{item_id}' failed: {message}")
        self.item_id = item_id
        self.reason = message


class ItemCreationWarning(AutomationError):
    """The create call returned but without a verifiable record id."""

    def __init__(self, item_id: str):
        super().__init__(f"Item '{item_id}' created without a record id")
        self.item_id = item_id


class OperationInProgressError(AutomationError):
    """The same operation was invoked again while still running."""


class EntityStoreError(AutomationError):
    """Base exception for entity persistence failures."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class RecordNotFoundError(EntityStoreError):
    """Update or delete targeted a record id that does not exist."""

    pass


class RateLimitError(EntityStoreError):
    """Rate limit exceeded."""

    pass
