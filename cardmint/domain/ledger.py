"""Uniqueness ledger: the only authority on card availability."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

from .cards import CardIdentity, CatalogItem
from .exceptions import AlreadyIssuedError
from ..storage.base import LedgerEntry, LedgerStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AvailabilityStats:
    total: int
    issued: int
    available: int
    percent_issued: float

    def as_dict(self) -> dict[str, object]:
        return {
            "totalCards": self.total,
            "issuedCards": self.issued,
            "availableCards": self.available,
            "percentIssued": f"{self.percent_issued:.2f}%",
        }


class UniquenessLedger:
    """Record which catalog identities have been issued, and to whom.

    ``issue`` is the single mutator. Every successful call creates exactly
    one entry, and an identity that already has an owner is rejected with
    ``AlreadyIssuedError`` rather than overwritten.
    """

    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    async def is_issued(self, identity: CardIdentity | CatalogItem | str) -> bool:
        return await self._store.contains(_key(identity))

    async def issue(
        self, item: CatalogItem, owner_id: str, *, source: str | None = None
    ) -> LedgerEntry:
        entry = LedgerEntry(
            item_key=item.key,
            owner_id=str(owner_id),
            issued_at=datetime.now(timezone.utc),
            tier=item.tier,
            name=item.name,
            season=item.season,
            source=source,
        )
        try:
            await self._store.insert_if_absent(entry)
        except AlreadyIssuedError:
            logger.debug("Card %s already issued; %s lost the race.", item.key, owner_id)
            raise
        logger.info("Issued card %s (tier %s) to %s.", item.key, item.tier, owner_id)
        return entry

    async def filter_available(self, items: Sequence[CatalogItem]) -> list[CatalogItem]:
        """Return the subset of ``items`` that nobody owns yet, preserving order."""
        if not items:
            return []
        issued = await self._store.issued_among(item.key for item in items)
        return [item for item in items if item.key not in issued]

    async def entries_for_owner(self, owner_id: str) -> Sequence[LedgerEntry]:
        return await self._store.for_owner(str(owner_id))

    async def entries_for_source(self, source: str) -> Sequence[LedgerEntry]:
        return await self._store.for_source(source)

    async def issued_count(self) -> int:
        return await self._store.count()

    async def availability_stats(self, catalog_size: int) -> AvailabilityStats:
        issued = await self._store.count()
        percent = (issued / catalog_size * 100.0) if catalog_size else 0.0
        return AvailabilityStats(
            total=catalog_size,
            issued=issued,
            available=max(0, catalog_size - issued),
            percent_issued=percent,
        )

    async def reset(self) -> int:
        """Delete every entry. Administrative use only."""
        removed = await self._store.clear()
        logger.warning("Uniqueness ledger reset; %s entries removed.", removed)
        return removed


def _key(identity: CardIdentity | CatalogItem | str) -> str:
    if isinstance(identity, (CardIdentity, CatalogItem)):
        return identity.key
    return str(identity).strip().lower()
