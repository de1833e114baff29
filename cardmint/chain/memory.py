"""In-process external ledger used by tests, demos and simulations."""

from __future__ import annotations

import asyncio
import hashlib
import itertools
from dataclasses import dataclass, field
from typing import Sequence

from ..domain.exceptions import ExternalCallError
from .base import ItemMinted, MintReceipt, PurchaseRecorded


@dataclass(slots=True)
class MintCall:
    to_address: str
    item_keys: tuple[str, ...]
    tx_ref: str


@dataclass(slots=True)
class InMemoryChain:
    """Deterministic stand-in for a contract on a block-based network.

    Failures can be injected per call type: ``fail_reads`` and ``fail_mints``
    count down one per failed call. ``max_range`` mimics provider limits on
    ``purchase_events`` ranges.
    """

    start_position: int = 0
    max_range: int | None = None
    mint_delay: float = 0.0
    fail_reads: int = 0
    fail_mints: int = 0
    drop_mint_logs: bool = False
    events: list[PurchaseRecorded] = field(default_factory=list)
    mint_calls: list[MintCall] = field(default_factory=list)
    _head: int = field(init=False, default=0)
    _pack_ids: "itertools.count[int]" = field(init=False, default_factory=lambda: itertools.count(1))
    _token_ids: "itertools.count[int]" = field(init=False, default_factory=lambda: itertools.count(1))

    def __post_init__(self) -> None:
        self._head = self.start_position

    def record_purchase(
        self,
        buyer_address: str,
        *,
        price: int = 10**16,
        external_pack_id: str | None = None,
        same_block: bool = False,
    ) -> PurchaseRecorded:
        if not same_block or not self.events:
            self._head += 1
        pack_id = external_pack_id or str(next(self._pack_ids))
        log_index = sum(1 for event in self.events if event.position == self._head)
        event = PurchaseRecorded(
            buyer_address=buyer_address,
            external_pack_id=pack_id,
            price=price,
            tx_ref=_tx_hash("purchase", pack_id, self._head),
            position=self._head,
            log_index=log_index,
        )
        self.events.append(event)
        return event

    def advance(self, blocks: int = 1) -> int:
        self._head += blocks
        return self._head

    async def head(self) -> int:
        self._maybe_fail_read("head")
        return self._head

    async def purchase_events(self, start: int, end: int) -> Sequence[PurchaseRecorded]:
        self._maybe_fail_read("purchase_events")
        if self.max_range is not None and end - start + 1 > self.max_range:
            raise ExternalCallError(
                f"Range {start}-{end} exceeds provider limit of {self.max_range} blocks"
            )
        selected = [event for event in self.events if start <= event.position <= end]
        return sorted(selected, key=lambda event: (event.position, event.log_index))

    async def mint_batch(self, to_address: str, item_keys: Sequence[str]) -> MintReceipt:
        if self.mint_delay:
            await asyncio.sleep(self.mint_delay)
        if self.fail_mints > 0:
            self.fail_mints -= 1
            raise ExternalCallError("mint_batch reverted")
        tx_ref = _tx_hash("mint", to_address, len(self.mint_calls))
        self.mint_calls.append(MintCall(to_address, tuple(item_keys), tx_ref))
        minted: tuple[ItemMinted, ...] = ()
        if not self.drop_mint_logs:
            minted = tuple(
                ItemMinted(token_ref=str(next(self._token_ids)), to_address=to_address, item_key=key)
                for key in item_keys
            )
        return MintReceipt(tx_ref=tx_ref, minted=minted)

    def _maybe_fail_read(self, call: str) -> None:
        if self.fail_reads > 0:
            self.fail_reads -= 1
            raise ExternalCallError(f"{call} failed: provider unavailable")


def _tx_hash(*parts: object) -> str:
    digest = hashlib.sha256(":".join(map(str, parts)).encode("utf-8")).hexdigest()
    return f"0x{digest}"
