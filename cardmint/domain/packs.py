"""Pack assembly: starter and bonus shapes on top of the lottery and ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Mapping, Sequence

from .cards import CatalogItem, Role
from .events import PACK_OPENED, EventBus
from .exceptions import AlreadyIssuedError
from .ledger import UniquenessLedger
from .lottery import TierLottery
from ..config import LotteryConfig

logger = logging.getLogger(__name__)


class PackShape(str, Enum):
    STARTER = "starter"
    BONUS = "bonus"


# ``None`` marks a random slot. Across the three packs every roster role
# (QB RB WR WR TE OL DL LB DB DB K) is covered at least once.
STARTER_PACK_ROLES: Mapping[int, tuple[Role | None, ...]] = {
    0: (Role.QB, Role.RB, Role.WR, Role.TE, Role.OL),
    1: (Role.DL, Role.LB, Role.DB, Role.DB, Role.K),
    2: (Role.WR, None, None, None, None),
}


@dataclass(slots=True)
class PackResult:
    items: Sequence[CatalogItem]
    requested: int
    shape: PackShape
    pack_number: int | None = None
    owner_id: str = ""
    roles: Sequence[Role | None] = field(default_factory=tuple)

    @property
    def shortfall(self) -> bool:
        return len(self.items) < self.requested

    def as_dict(self) -> dict[str, object]:
        return {
            "packType": self.shape.value,
            "packNumber": (self.pack_number + 1) if self.pack_number is not None else None,
            "items": [
                {
                    "key": item.key,
                    "player": item.name,
                    "season": item.season,
                    "tier": item.tier,
                    "position": item.role.value if item.role else None,
                    "team": item.team,
                    "pack_position": index,
                }
                for index, item in enumerate(self.items, start=1)
            ],
            "shortfall": self.shortfall,
        }


Draw = Callable[[], Awaitable[CatalogItem | None]]


class PackAssembler:
    """Build packs, issuing every selected card into the ledger as it goes.

    A slot whose draw loses an ``AlreadyIssuedError`` race is redrawn. Slots
    that still come back empty are backfilled with any available card, and a
    fully exhausted catalog yields a short pack instead of an error.
    """

    def __init__(
        self,
        lottery: TierLottery,
        ledger: UniquenessLedger,
        config: LotteryConfig,
        *,
        event_bus: EventBus | None = None,
    ) -> None:
        self._lottery = lottery
        self._ledger = ledger
        self._config = config
        self._events = event_bus

    async def open_for_user(self, owner_id: str, packs_opened: int) -> PackResult:
        """Open the next pack for a user who has already opened ``packs_opened`` packs."""
        if packs_opened < self._config.starter_pack_count:
            return await self.open_starter(owner_id, packs_opened)
        return await self.open_bonus(owner_id)

    async def open_starter(
        self, owner_id: str, pack_number: int, *, source: str | None = None
    ) -> PackResult:
        roles = STARTER_PACK_ROLES.get(pack_number, STARTER_PACK_ROLES[0])
        slots = list(roles) + [None] * max(0, self._config.pack_size - len(roles))
        slots = slots[: self._config.pack_size]
        draws: list[Draw] = [self._slot_draw(role) for role in slots]
        items = await self._assemble(owner_id, draws, source=source)
        result = PackResult(
            items=items,
            requested=self._config.pack_size,
            shape=PackShape.STARTER,
            pack_number=pack_number,
            owner_id=str(owner_id),
            roles=tuple(slots),
        )
        await self._publish(result)
        return result

    async def open_bonus(
        self,
        owner_id: str,
        *,
        source: str | None = None,
        size: int | None = None,
    ) -> PackResult:
        requested = size if size is not None else self._config.pack_size
        draws: list[Draw] = [self._lottery.draw for _ in range(requested)]
        items = await self._assemble(owner_id, draws, source=source)
        result = PackResult(
            items=items,
            requested=requested,
            shape=PackShape.BONUS,
            owner_id=str(owner_id),
        )
        await self._publish(result)
        return result

    def _slot_draw(self, role: Role | None) -> Draw:
        if role is None:
            return self._lottery.draw

        async def draw_role() -> CatalogItem | None:
            return await self._lottery.draw_from_role(role, self._config.starter_tier_band)

        return draw_role

    async def _assemble(
        self, owner_id: str, draws: Sequence[Draw], *, source: str | None
    ) -> list[CatalogItem]:
        items: list[CatalogItem] = []
        missing = 0
        for draw in draws:
            item = await self._draw_and_issue(draw, owner_id, source)
            if item is None:
                missing += 1
            else:
                items.append(item)

        for _ in range(missing):
            filler = await self._draw_and_issue(self._lottery.draw_any, owner_id, source)
            if filler is None:
                logger.warning(
                    "Catalog exhausted: pack for %s holds %s of %s cards.",
                    owner_id,
                    len(items),
                    len(draws),
                )
                break
            items.append(filler)
        return items

    async def _draw_and_issue(
        self, draw: Draw, owner_id: str, source: str | None
    ) -> CatalogItem | None:
        for attempt in range(1, self._config.issue_retries + 1):
            item = await draw()
            if item is None:
                return None
            try:
                await self._ledger.issue(item, owner_id, source=source)
            except AlreadyIssuedError:
                logger.debug(
                    "Lost issue race for %s (attempt %s/%s); redrawing.",
                    item.key,
                    attempt,
                    self._config.issue_retries,
                )
                continue
            return item
        return None

    async def _publish(self, result: PackResult) -> None:
        if self._events is None:
            return
        try:
            await self._events.publish(
                PACK_OPENED,
                {
                    "owner_id": result.owner_id,
                    "shape": result.shape.value,
                    "cards": [item.key for item in result.items],
                    "shortfall": result.shortfall,
                },
            )
        except Exception:
            logger.exception(
                "Subscriber for %s failed; pack for %s already issued.", PACK_OPENED, result.owner_id
            )
