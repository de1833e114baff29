"""Monte-Carlo check of the tier lottery against its configured weights."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict

from ..domain.lottery import TierLottery


@dataclass(slots=True)
class TierDeviation:
    tier: int
    expected: float
    observed: float

    @property
    def delta(self) -> float:
        return self.observed - self.expected


@dataclass(slots=True)
class DistributionResult:
    draws: int
    counts: Dict[int, int] = field(default_factory=dict)
    deviations: list[TierDeviation] = field(default_factory=list)

    @property
    def max_deviation(self) -> float:
        return max((abs(row.delta) for row in self.deviations), default=0.0)

    def within(self, tolerance: float) -> bool:
        """True when every tier is within ``tolerance`` percentage points."""
        return self.max_deviation <= tolerance


class DistributionSimulator:
    """Roll tiers only; the ledger is never touched."""

    def __init__(self, lottery: TierLottery) -> None:
        self._lottery = lottery

    def simulate(self, *, draws: int = 100_000) -> DistributionResult:
        if draws <= 0:
            raise ValueError("draws must be positive")
        counts = Counter(self._lottery.draw_tier() for _ in range(draws))
        result = DistributionResult(draws=draws, counts=dict(counts))
        for tier, expected in self._lottery.expected_rates().items():
            observed = counts.get(tier, 0) / draws * 100.0
            result.deviations.append(TierDeviation(tier=tier, expected=expected, observed=observed))
        return result
