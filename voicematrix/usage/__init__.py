"""Usage limits: quota counters, ledger, evaluation and auto-deletion."""

from voicematrix.usage.auto_deletion import AutoDeletionOrchestrator
from voicematrix.usage.evaluator import LimitEvaluator, compute_limits_view
from voicematrix.usage.ledger import UsageLedger
from voicematrix.usage.quota_store import QuotaStore
from voicematrix.usage.service import UsageLimitsService

__all__ = [
    "AutoDeletionOrchestrator",
    "LimitEvaluator",
    "QuotaStore",
    "UsageLedger",
    "UsageLimitsService",
    "compute_limits_view",
]
