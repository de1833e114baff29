"""Reconcile on-chain pack purchases into issued cards, exactly once."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Sequence

from .cards import CatalogIndex, CatalogItem
from .events import PURCHASE_FAILED, PURCHASE_FULFILLED, EventBus
from .exceptions import CardMintError, CatalogExhaustedError
from .ledger import UniquenessLedger
from .packs import PackAssembler
from .retry import RetryPolicy, call_with_retry
from ..chain.base import ChainGateway, PurchaseRecorded
from ..config import ListenerConfig
from ..storage.base import (
    CursorStore,
    PurchaseCardRecord,
    PurchaseKey,
    PurchaseRecord,
    PurchaseStatus,
    PurchaseStore,
    WalletStore,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MintJob:
    record: PurchaseRecord
    items: Sequence[CatalogItem]


@dataclass(slots=True)
class PollReport:
    """Summary of one poll cycle."""

    cursor_before: int | None = None
    cursor_after: int | None = None
    head: int | None = None
    chunks: int = 0
    events: int = 0
    fulfilled: int = 0
    failed: int = 0
    skipped: int = 0
    busy: bool = False


@dataclass(slots=True)
class _ChunkState:
    queued: set[PurchaseKey] = field(default_factory=set)
    jobs: "asyncio.Queue[MintJob]" = field(default_factory=asyncio.Queue)


class FulfillmentListener:
    """Poll the external event log and fulfill each purchase exactly once.

    Work happens chunk by chunk. Selection (purchase row, lottery, ledger)
    runs for every event of the chunk first and queues a mint job; a single
    worker then drains the queue so only one mint call is ever in flight.
    The cursor moves to the chunk end only after the queue is empty, so a
    crash re-processes the chunk and the per-purchase status check makes
    that harmless.
    """

    def __init__(
        self,
        gateway: ChainGateway,
        *,
        catalog: CatalogIndex,
        ledger: UniquenessLedger,
        assembler: PackAssembler,
        purchases: PurchaseStore,
        cursors: CursorStore,
        wallets: WalletStore,
        config: ListenerConfig,
        pack_size: int = 5,
        event_bus: EventBus | None = None,
    ) -> None:
        self._gateway = gateway
        self._catalog = catalog
        self._ledger = ledger
        self._assembler = assembler
        self._purchases = purchases
        self._cursors = cursors
        self._wallets = wallets
        self._config = config
        self._pack_size = pack_size
        self._events = event_bus
        self._lock = asyncio.Lock()
        self._stopping: asyncio.Event | None = None
        self._read_policy = RetryPolicy(
            attempts=config.read_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
        )
        self._mint_policy = RetryPolicy(
            attempts=config.mint_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
            timeout=config.mint_timeout_seconds,
        )

    @property
    def network_id(self) -> int:
        return self._config.network_id

    @property
    def contract_address(self) -> str:
        return self._config.contract_address.lower()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def purchase_key(self, external_pack_id: object) -> PurchaseKey:
        return PurchaseKey.build(self.network_id, self.contract_address, external_pack_id)

    async def poll_once(self) -> PollReport:
        """Run one poll cycle. A cycle already in progress turns this into a no-op.

        Errors reading the event log or persisting the cursor propagate; the
        cursor then still points at the last fully processed chunk.
        """
        if self._lock.locked():
            logger.debug("Poll cycle already running; skipping tick.")
            return PollReport(busy=True)

        async with self._lock:
            report = PollReport()
            cursor, head = await self._load_cursor()
            report.cursor_before = report.cursor_after = cursor
            if head is None:
                head = await call_with_retry("head", self._gateway.head, policy=self._read_policy)
            report.head = head
            if head <= cursor:
                return report

            start = cursor + 1
            while start <= head:
                end = min(start + self._config.chunk_size - 1, head)
                events = await call_with_retry(
                    "purchase_events",
                    self._gateway.purchase_events,
                    start,
                    end,
                    policy=self._read_policy,
                )
                await self._process_chunk(events, report)
                report.cursor_after = await self._cursors.advance(
                    self.network_id, self.contract_address, end
                )
                report.chunks += 1
                logger.debug("Processed positions %s-%s (%s events).", start, end, len(events))
                start = end + 1

            logger.info(
                "Poll cycle done: cursor %s -> %s, %s events, %s fulfilled, %s failed, %s skipped.",
                report.cursor_before,
                report.cursor_after,
                report.events,
                report.fulfilled,
                report.failed,
                report.skipped,
            )
            return report

    async def process_event(self, event: PurchaseRecorded) -> PurchaseRecord:
        """Select and mint a single purchase outside the polling loop."""
        async with self._lock:
            report = PollReport()
            await self._process_chunk([event], report)
        return await self._require(self.purchase_key(event.external_pack_id))

    async def retry_purchase(self, external_pack_id: object) -> PurchaseRecord:
        """Administrative retry of a ``failed`` purchase."""
        key = self.purchase_key(external_pack_id)
        async with self._lock:
            record = await self._purchases.reopen(key)
            logger.info("Retrying failed purchase %s.", key)
            job = await self._select(record, PollReport())
            if job is not None:
                await self._fulfill(job, PollReport())
        return await self._require(key)

    async def purchase_status(self, external_pack_id: object) -> PurchaseRecord | None:
        return await self._purchases.get(self.purchase_key(external_pack_id))

    async def purchases_for_wallet(self, address: str) -> Sequence[PurchaseRecord]:
        return await self._purchases.for_wallet(address)

    async def run(self, interval: float | None = None) -> None:
        """Poll periodically until ``stop`` is called."""
        delay = interval if interval is not None else self._config.poll_interval_seconds
        self._stopping = asyncio.Event()
        logger.info(
            "Fulfillment listener started for %s on network %s (every %.1f s).",
            self.contract_address,
            self.network_id,
            delay,
        )
        while not self._stopping.is_set():
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Poll cycle failed; retrying from the stored cursor next tick.")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)
            except asyncio.TimeoutError:
                continue
        logger.info("Fulfillment listener stopped.")

    def stop(self) -> None:
        if self._stopping is not None:
            self._stopping.set()

    async def _load_cursor(self) -> tuple[int, int | None]:
        """Return the stored cursor, plus the head read to seed it on first run."""
        stored = await self._cursors.get(self.network_id, self.contract_address)
        if stored is not None:
            return stored, None
        head = await call_with_retry("head", self._gateway.head, policy=self._read_policy)
        start = max(0, head - self._config.lookback)
        logger.info("No sync cursor for %s; starting at %s (head %s).", self.contract_address, start, head)
        cursor = await self._cursors.advance(self.network_id, self.contract_address, start)
        return cursor, head

    async def _process_chunk(self, events: Sequence[PurchaseRecorded], report: PollReport) -> None:
        state = _ChunkState()
        for event in events:
            report.events += 1
            key = self.purchase_key(event.external_pack_id)
            if key in state.queued:
                report.skipped += 1
                continue
            record = await self._register(key, event)
            if record is None:
                report.skipped += 1
                continue
            job = await self._select(record, report)
            if job is not None:
                state.queued.add(key)
                state.jobs.put_nowait(job)

        while not state.jobs.empty():
            job = state.jobs.get_nowait()
            await self._fulfill(job, report)
            state.jobs.task_done()

    async def _register(self, key: PurchaseKey, event: PurchaseRecorded) -> PurchaseRecord | None:
        existing = await self._purchases.get(key)
        if existing is not None and existing.status is not PurchaseStatus.PURCHASED:
            logger.debug("Purchase %s already %s; ignoring event.", key, existing.status.value)
            return None
        if existing is not None:
            return existing

        user_id = await self._wallets.user_for_address(event.buyer_address)
        record = await self._purchases.create_if_absent(
            PurchaseRecord(
                key=key,
                buyer_address=event.buyer_address.lower(),
                tx_ref=event.tx_ref,
                position=event.position,
                created_at=datetime.now(timezone.utc),
                user_id=user_id,
                price=event.price,
            )
        )
        if record.status is not PurchaseStatus.PURCHASED:
            return None
        if user_id is None:
            logger.info("Purchase %s by unlinked wallet %s.", key, event.buyer_address)
        return record

    async def _select(self, record: PurchaseRecord, report: PollReport) -> MintJob | None:
        try:
            items = await self._select_items(record)
        except CatalogExhaustedError as exc:
            await self._fail(record, str(exc), report)
            return None
        except Exception as exc:
            logger.exception("Card selection failed for purchase %s.", record.key)
            await self._fail(record, f"selection failed: {exc}", report)
            return None
        return MintJob(record=record, items=items)

    async def _select_items(self, record: PurchaseRecord) -> list[CatalogItem]:
        # Cards issued by an interrupted earlier attempt stay with this purchase.
        source = record.key.source
        owner = record.user_id or record.buyer_address.lower()
        items = [
            self._catalog.get(entry.item_key)
            for entry in await self._ledger.entries_for_source(source)
            if entry.item_key in self._catalog
        ]
        missing = self._pack_size - len(items)
        if missing > 0:
            pack = await self._assembler.open_bonus(owner, source=source, size=missing)
            items.extend(pack.items)
        if len(items) < self._config.min_cards:
            raise CatalogExhaustedError(
                f"catalog exhausted: selected {len(items)} of {self._config.min_cards} cards"
            )
        logger.debug("Selected %s for purchase %s.", [item.key for item in items], record.key)
        return items

    async def _fulfill(self, job: MintJob, report: PollReport) -> None:
        record = job.record
        current = await self._purchases.get(record.key)
        if current is None or current.status is not PurchaseStatus.PURCHASED:
            report.skipped += 1
            return

        keys = [item.key for item in job.items]
        try:
            receipt = await call_with_retry(
                "mint_batch",
                self._gateway.mint_batch,
                record.buyer_address,
                keys,
                policy=self._mint_policy,
            )
            token_refs = receipt.token_refs_for(keys)
            cards = [
                PurchaseCardRecord(
                    token_ref=token_ref,
                    item_key=item.key,
                    name=item.name,
                    season=item.season,
                    tier=item.tier,
                    role=item.role.value if item.role else None,
                    mint_tx_ref=receipt.tx_ref,
                )
                for item, token_ref in zip(job.items, token_refs)
            ]
            fulfilled = await self._purchases.mark_fulfilled(
                record.key, cards, datetime.now(timezone.utc)
            )
        except (CardMintError, LookupError) as exc:
            logger.error("Fulfillment of purchase %s failed: %s", record.key, exc)
            await self._fail(record, str(exc), report)
            return
        except Exception as exc:
            logger.exception("Unexpected error fulfilling purchase %s.", record.key)
            await self._fail(record, f"{type(exc).__name__}: {exc}", report)
            return

        report.fulfilled += 1
        logger.info("Purchase %s fulfilled in %s.", record.key, receipt.tx_ref)
        await self._publish(
            PURCHASE_FULFILLED,
            {
                "purchase": str(record.key),
                "buyer": fulfilled.buyer_address,
                "user_id": fulfilled.user_id,
                "tokens": [card.token_ref for card in fulfilled.cards],
            },
        )

    async def _fail(self, record: PurchaseRecord, reason: str, report: PollReport) -> None:
        await self._purchases.mark_failed(record.key, reason)
        report.failed += 1
        logger.warning("Purchase %s marked failed: %s", record.key, reason)
        await self._publish(
            PURCHASE_FAILED,
            {"purchase": str(record.key), "buyer": record.buyer_address, "reason": reason},
        )

    async def _require(self, key: PurchaseKey) -> PurchaseRecord:
        record = await self._purchases.get(key)
        if record is None:  # pragma: no cover - created before processing
            raise LookupError(f"Purchase {key} not found")
        return record

    async def _publish(self, name: str, payload: dict) -> None:
        if self._events is None:
            return
        try:
            await self._events.publish(name, payload)
        except Exception:
            logger.exception("Subscriber for %s failed; purchase state is unaffected.", name)
