"""Contract of the external ledger the fulfillment listener talks to."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, Sequence


@dataclass(frozen=True, slots=True)
class PurchaseRecorded:
    """A pack purchase observed in the external event log."""

    buyer_address: str
    external_pack_id: str
    price: int
    tx_ref: str
    position: int
    log_index: int = 0


@dataclass(frozen=True, slots=True)
class ItemMinted:
    """Emitted once per card by ``mint_batch``."""

    token_ref: str
    to_address: str
    item_key: str


@dataclass(slots=True)
class MintReceipt:
    tx_ref: str
    minted: Sequence[ItemMinted] = field(default_factory=tuple)

    def token_refs_for(self, item_keys: Sequence[str]) -> list[str]:
        """Match ``ItemMinted`` logs to ``item_keys``, in the same order.

        Raises ``LookupError`` when a key has no matching log.
        """
        by_key: dict[str, list[str]] = {}
        for event in self.minted:
            by_key.setdefault(event.item_key.lower(), []).append(event.token_ref)
        refs: list[str] = []
        for key in item_keys:
            tokens = by_key.get(key.lower())
            if not tokens:
                raise LookupError(f"No ItemMinted log for {key} in {self.tx_ref}")
            refs.append(tokens.pop(0))
        return refs


class ChainGateway(Protocol):
    async def head(self) -> int:
        """Current position of the event log."""
        ...

    async def purchase_events(self, start: int, end: int) -> Sequence[PurchaseRecorded]:
        """Purchase events with ``start <= position <= end`` in log order."""
        ...

    async def mint_batch(self, to_address: str, item_keys: Sequence[str]) -> MintReceipt:
        ...
