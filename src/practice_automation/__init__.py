"""Practice Automation - rule engine for recurring accounting-practice records."""

__version__ = "0.1.0"

from practice_automation.config import configure_logging, get_settings
from practice_automation.due_dates import DueDateCalculator, ServiceDueDates
from practice_automation.engine import (
    CancellationToken,
    CleanupEngine,
    ExecutionResult,
    Executor,
    PreviewBuilder,
    PreviewResult,
    ServiceLinkResolver,
)
from practice_automation.errors import (
    AutomationError,
    EntityStoreError,
    ItemCreationError,
    ItemCreationWarning,
    OperationInProgressError,
    RuleValidationError,
    ScanError,
)
from practice_automation.rules import RuleStore, default_rules, parse_rule
from practice_automation.store import HttpEntityStore, InMemoryEntityStore

__all__ = [
    # Version
    "__version__",
    # Rules
    "RuleStore",
    "default_rules",
    "parse_rule",
    # Engine
    "PreviewBuilder",
    "PreviewResult",
    "Executor",
    "ExecutionResult",
    "CleanupEngine",
    "ServiceLinkResolver",
    "CancellationToken",
    # Due dates
    "ServiceDueDates",
    "DueDateCalculator",
    # Stores
    "InMemoryEntityStore",
    "HttpEntityStore",
    # Errors
    "AutomationError",
    "EntityStoreError",
    "ItemCreationError",
    "ItemCreationWarning",
    "OperationInProgressError",
    "RuleValidationError",
    "ScanError",
    # Config
    "get_settings",
    "configure_logging",
]
