"""Diagnostics for catalog balance and lottery behaviour."""

from .checklist import ChecklistIssue, run_checklist
from .distribution import DistributionResult, DistributionSimulator, TierDeviation

__all__ = [
    "ChecklistIssue",
    "DistributionResult",
    "DistributionSimulator",
    "TierDeviation",
    "run_checklist",
]
