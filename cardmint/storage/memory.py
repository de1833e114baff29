"""In-memory storage backend for CardMint."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import replace
from datetime import datetime, timezone
from typing import Deque, Iterable, Sequence

from ..domain.exceptions import AlreadyIssuedError, InvalidPurchaseTransition, PurchaseNotFound
from .base import (
    AuditStore,
    CursorStore,
    LedgerEntry,
    LedgerStore,
    PurchaseCardRecord,
    PurchaseKey,
    PurchaseRecord,
    PurchaseStatus,
    PurchaseStore,
    WalletStore,
)


class InMemoryLedgerStore(LedgerStore):
    """Ledger held in a dict, with one lock per key shard.

    The check and the insert happen under the shard lock with no await in
    between, so concurrent coroutines and threads cannot both win a key.
    """

    def __init__(self, *, shards: int = 64) -> None:
        self._entries: dict[str, LedgerEntry] = {}
        self._locks = [threading.Lock() for _ in range(max(1, shards))]

    def _lock_for(self, item_key: str) -> threading.Lock:
        return self._locks[hash(item_key) % len(self._locks)]

    async def insert_if_absent(self, entry: LedgerEntry) -> None:
        with self._lock_for(entry.item_key):
            if entry.item_key in self._entries:
                raise AlreadyIssuedError(entry.item_key)
            self._entries[entry.item_key] = entry

    async def contains(self, item_key: str) -> bool:
        return item_key in self._entries

    async def issued_among(self, item_keys: Iterable[str]) -> set[str]:
        return {key for key in item_keys if key in self._entries}

    async def count(self) -> int:
        return len(self._entries)

    async def for_owner(self, owner_id: str) -> Sequence[LedgerEntry]:
        return [entry for entry in list(self._entries.values()) if entry.owner_id == owner_id]

    async def for_source(self, source: str) -> Sequence[LedgerEntry]:
        return [entry for entry in list(self._entries.values()) if entry.source == source]

    async def clear(self) -> int:
        for lock in self._locks:
            lock.acquire()
        try:
            removed = len(self._entries)
            self._entries.clear()
            return removed
        finally:
            for lock in self._locks:
                lock.release()


class InMemoryPurchaseStore(PurchaseStore):
    def __init__(self) -> None:
        self._records: dict[PurchaseKey, PurchaseRecord] = {}

    async def get(self, key: PurchaseKey) -> PurchaseRecord | None:
        record = self._records.get(key)
        return _copy(record) if record else None

    async def create_if_absent(self, record: PurchaseRecord) -> PurchaseRecord:
        existing = self._records.setdefault(record.key, _copy(record))
        return _copy(existing)

    async def mark_fulfilled(
        self, key: PurchaseKey, cards: Sequence[PurchaseCardRecord], fulfilled_at: datetime
    ) -> PurchaseRecord:
        record = self._require(key)
        if record.status is not PurchaseStatus.PURCHASED:
            raise InvalidPurchaseTransition(str(key), record.status.value, PurchaseStatus.FULFILLED.value)
        record.cards = [replace(card) for card in cards]
        record.status = PurchaseStatus.FULFILLED
        record.fulfilled_at = fulfilled_at
        return _copy(record)

    async def mark_failed(self, key: PurchaseKey, reason: str) -> PurchaseRecord:
        record = self._require(key)
        if record.status is not PurchaseStatus.PURCHASED:
            raise InvalidPurchaseTransition(str(key), record.status.value, PurchaseStatus.FAILED.value)
        record.status = PurchaseStatus.FAILED
        record.failure_reason = reason
        return _copy(record)

    async def reopen(self, key: PurchaseKey) -> PurchaseRecord:
        record = self._require(key)
        if record.status is not PurchaseStatus.FAILED:
            raise InvalidPurchaseTransition(str(key), record.status.value, PurchaseStatus.PURCHASED.value)
        record.status = PurchaseStatus.PURCHASED
        record.failure_reason = None
        return _copy(record)

    async def for_wallet(self, address: str) -> Sequence[PurchaseRecord]:
        needle = address.strip().lower()
        matches = [
            _copy(record)
            for record in self._records.values()
            if record.buyer_address.lower() == needle
        ]
        return sorted(matches, key=lambda rec: rec.created_at, reverse=True)

    def _require(self, key: PurchaseKey) -> PurchaseRecord:
        try:
            return self._records[key]
        except KeyError as exc:
            raise PurchaseNotFound(f"Purchase {key} not found") from exc


class InMemoryCursorStore(CursorStore):
    def __init__(self) -> None:
        self._positions: dict[tuple[int, str], int] = {}

    async def get(self, network_id: int, contract_address: str) -> int | None:
        return self._positions.get((network_id, contract_address.lower()))

    async def advance(self, network_id: int, contract_address: str, position: int) -> int:
        key = (network_id, contract_address.lower())
        current = self._positions.get(key)
        stored = position if current is None else max(current, position)
        self._positions[key] = stored
        return stored


class InMemoryWalletStore(WalletStore):
    def __init__(self) -> None:
        self._users_by_address: dict[str, str] = {}

    async def link(self, user_id: str, address: str) -> None:
        # One wallet per user, as in the relational schema.
        for known, owner in list(self._users_by_address.items()):
            if owner == user_id:
                del self._users_by_address[known]
        self._users_by_address[address.strip().lower()] = user_id

    async def user_for_address(self, address: str) -> str | None:
        return self._users_by_address.get(address.strip().lower())


class InMemoryAuditStore(AuditStore):
    def __init__(self, *, maxlen: int = 1000) -> None:
        self._entries: Deque[tuple[datetime, str, dict]] = deque(maxlen=maxlen)

    async def add_entry(self, action: str, payload: dict) -> None:
        self._entries.append((datetime.now(timezone.utc), action, payload))

    def dump(self) -> list[tuple[datetime, str, dict]]:
        return list(self._entries)


def _copy(record: PurchaseRecord) -> PurchaseRecord:
    return replace(record, cards=[replace(card) for card in record.cards])
