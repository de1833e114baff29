"""Storage abstractions used by the CardMint services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Protocol, Sequence


class PurchaseStatus(str, Enum):
    PURCHASED = "purchased"
    FULFILLED = "fulfilled"
    FAILED = "failed"


@dataclass(slots=True)
class LedgerEntry:
    item_key: str
    owner_id: str
    issued_at: datetime
    tier: int
    name: str = ""
    season: int = 0
    source: str | None = None


@dataclass(frozen=True, slots=True)
class PurchaseKey:
    network_id: int
    contract_address: str
    external_pack_id: str

    @classmethod
    def build(cls, network_id: int, contract_address: str, external_pack_id: object) -> "PurchaseKey":
        return cls(int(network_id), contract_address.strip().lower(), str(external_pack_id))

    @property
    def source(self) -> str:
        """Ledger source tag for items issued on behalf of this purchase."""
        return f"purchase:{self.network_id}:{self.contract_address}:{self.external_pack_id}"

    def __str__(self) -> str:
        return f"{self.network_id}/{self.contract_address}#{self.external_pack_id}"


@dataclass(slots=True)
class PurchaseCardRecord:
    token_ref: str
    item_key: str
    name: str
    season: int
    tier: int
    role: str | None
    mint_tx_ref: str | None = None


@dataclass(slots=True)
class PurchaseRecord:
    key: PurchaseKey
    buyer_address: str
    tx_ref: str
    position: int
    created_at: datetime
    user_id: str | None = None
    price: int = 0
    status: PurchaseStatus = PurchaseStatus.PURCHASED
    fulfilled_at: datetime | None = None
    failure_reason: str | None = None
    cards: list[PurchaseCardRecord] = field(default_factory=list)


class LedgerStore(Protocol):
    async def insert_if_absent(self, entry: LedgerEntry) -> None:
        """Insert the entry or raise AlreadyIssuedError, atomically per key."""
        ...

    async def contains(self, item_key: str) -> bool:
        ...

    async def issued_among(self, item_keys: Iterable[str]) -> set[str]:
        ...

    async def count(self) -> int:
        ...

    async def for_owner(self, owner_id: str) -> Sequence[LedgerEntry]:
        ...

    async def for_source(self, source: str) -> Sequence[LedgerEntry]:
        ...

    async def clear(self) -> int:
        ...


class PurchaseStore(Protocol):
    async def get(self, key: PurchaseKey) -> PurchaseRecord | None:
        ...

    async def create_if_absent(self, record: PurchaseRecord) -> PurchaseRecord:
        ...

    async def mark_fulfilled(
        self, key: PurchaseKey, cards: Sequence[PurchaseCardRecord], fulfilled_at: datetime
    ) -> PurchaseRecord:
        ...

    async def mark_failed(self, key: PurchaseKey, reason: str) -> PurchaseRecord:
        ...

    async def reopen(self, key: PurchaseKey) -> PurchaseRecord:
        ...

    async def for_wallet(self, address: str) -> Sequence[PurchaseRecord]:
        ...


class CursorStore(Protocol):
    async def get(self, network_id: int, contract_address: str) -> int | None:
        ...

    async def advance(self, network_id: int, contract_address: str, position: int) -> int:
        """Persist max(current, position) and return the stored value."""
        ...


class WalletStore(Protocol):
    async def link(self, user_id: str, address: str) -> None:
        ...

    async def user_for_address(self, address: str) -> str | None:
        ...


class AuditStore(Protocol):
    async def add_entry(self, action: str, payload: dict) -> None:
        ...
