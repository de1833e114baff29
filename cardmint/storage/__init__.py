"""Storage backends for CardMint."""

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
from .memory import (
    InMemoryAuditStore,
    InMemoryCursorStore,
    InMemoryLedgerStore,
    InMemoryPurchaseStore,
    InMemoryWalletStore,
)
from .sqlalchemy import AsyncSQLAlchemyStorage

__all__ = [
    "AuditStore",
    "CursorStore",
    "LedgerEntry",
    "LedgerStore",
    "PurchaseCardRecord",
    "PurchaseKey",
    "PurchaseRecord",
    "PurchaseStatus",
    "PurchaseStore",
    "WalletStore",
    "InMemoryAuditStore",
    "InMemoryCursorStore",
    "InMemoryLedgerStore",
    "InMemoryPurchaseStore",
    "InMemoryWalletStore",
    "AsyncSQLAlchemyStorage",
]
