"""Weighted tier lottery with availability-aware fallback."""

from __future__ import annotations

import logging
from random import Random
from typing import Mapping, Sequence

from .cards import CatalogIndex, CatalogItem, Role
from .ledger import UniquenessLedger
from ..config import LotteryConfig

logger = logging.getLogger(__name__)


class TierLottery:
    """Draw rarity tiers by weight, then draw an unissued card from a tier or role.

    A draw never returns a card the ledger reports as issued at the moment
    of the check. The caller still has to ``issue`` the card, and must be
    ready for ``AlreadyIssuedError`` if another request won it in between.
    """

    def __init__(
        self,
        catalog: CatalogIndex,
        ledger: UniquenessLedger,
        config: LotteryConfig,
        *,
        rng: Random | None = None,
    ) -> None:
        self._catalog = catalog
        self._ledger = ledger
        self._config = config
        self._rng = rng or Random()
        # Rarest first.
        self._weights: tuple[tuple[int, float], ...] = tuple(
            (int(tier), float(weight))
            for tier, weight in sorted(config.tier_weights.items(), key=lambda kv: -int(kv[0]))
            if weight > 0
        )
        self._total_weight = sum(weight for _, weight in self._weights)
        if self._total_weight <= 0:
            raise ValueError("Tier weights must contain at least one positive weight")

    @property
    def weights(self) -> Mapping[int, float]:
        return dict(self._weights)

    def expected_rates(self) -> dict[int, float]:
        """Percentage chance of each tier per draw."""
        return {tier: weight / self._total_weight * 100.0 for tier, weight in self._weights}

    def draw_tier(self) -> int:
        roll = self._rng.random() * self._total_weight
        cumulative = 0.0
        for tier, weight in self._weights:
            cumulative += weight
            if cumulative > roll:
                return tier
        return self._weights[-1][0]

    async def draw(self) -> CatalogItem | None:
        """Roll a tier and draw a card from it."""
        return await self.draw_from_tier(self.draw_tier())

    async def draw_from_tier(self, tier: int) -> CatalogItem | None:
        item = await self._pick(self._catalog.items_in_tier(tier))
        if item is not None:
            return item

        for fallback in self.fallback_order(tier):
            available = await self._ledger.filter_available(self._catalog.items_in_tier(fallback))
            if available:
                logger.debug("Tier %s exhausted; fell back to tier %s.", tier, fallback)
                return self._rng.choice(available)

        logger.warning("Catalog exhausted while drawing from tier %s.", tier)
        return None

    async def draw_from_role(
        self, role: Role, tier_band: tuple[int, int] | None = None
    ) -> CatalogItem | None:
        low, high = tier_band or self._config.starter_tier_band
        for tier in range(low, high + 1):
            available = await self._ledger.filter_available(self._catalog.items_in_role(role, tier))
            if available:
                return self._rng.choice(available)

        item = await self._pick(self._catalog.items_in_role(role))
        if item is None:
            logger.info("No %s cards left in any tier.", role.value)
        return item

    async def draw_any(self) -> CatalogItem | None:
        return await self._pick(self._catalog.items())

    def fallback_order(self, tier: int) -> list[int]:
        """Tiers to try once ``tier`` is exhausted, alternating outward, rarer first."""
        known = self._catalog.tiers
        if not known:
            return []
        low, high = min(known), max(known)
        order: list[int] = []
        distance = 1
        while tier + distance <= high or tier - distance >= low:
            for candidate in (tier + distance, tier - distance):
                if low <= candidate <= high and candidate != tier:
                    order.append(candidate)
            distance += 1
        return order

    async def _pick(self, candidates: Sequence[CatalogItem]) -> CatalogItem | None:
        if not candidates:
            return None
        for _ in range(self._config.max_attempts):
            candidate = candidates[int(self._rng.random() * len(candidates))]
            if not await self._ledger.is_issued(candidate):
                return candidate
        available = await self._ledger.filter_available(candidates)
        if available:
            return self._rng.choice(available)
        return None
