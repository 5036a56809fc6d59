"""Scan, execute, link and clean up automation records."""

from practice_automation.engine.cleanup import (
    CleanupEngine,
    CleanupFinding,
    CleanupReason,
    CleanupReport,
)
from practice_automation.engine.concurrency import CancellationToken, run_bounded
from practice_automation.engine.executor import (
    ExecutionDetail,
    ExecutionResult,
    Executor,
    ItemStatus,
)
from practice_automation.engine.existence import ExistenceChecker, PeriodicReportDedupPolicy
from practice_automation.engine.preview import PreviewBuilder, PreviewItem, PreviewResult
from practice_automation.engine.service_links import ServiceLinkResolver

__all__ = [
    "CancellationToken",
    "CleanupEngine",
    "CleanupFinding",
    "CleanupReason",
    "CleanupReport",
    "ExecutionDetail",
    "ExecutionResult",
    "Executor",
    "ExistenceChecker",
    "ItemStatus",
    "PeriodicReportDedupPolicy",
    "PreviewBuilder",
    "PreviewItem",
    "PreviewResult",
    "ServiceLinkResolver",
    "run_bounded",
]
