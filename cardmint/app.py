"""Top level application object wiring the catalog, ledger and listener."""

from __future__ import annotations

from random import Random
from typing import Any, Sequence

from .admin.service import AdminService
from .chain.base import ChainGateway
from .config import CardMintConfig
from .domain.cards import CatalogIndex
from .domain.events import EventBus
from .domain.fulfillment import FulfillmentListener
from .domain.ledger import AvailabilityStats, UniquenessLedger
from .domain.lottery import TierLottery
from .domain.packs import PackAssembler, PackResult
from .loaders import load_catalog
from .storage.base import (
    AuditStore,
    CursorStore,
    LedgerStore,
    PurchaseRecord,
    PurchaseStore,
    WalletStore,
)
from .storage.memory import (
    InMemoryAuditStore,
    InMemoryCursorStore,
    InMemoryLedgerStore,
    InMemoryPurchaseStore,
    InMemoryWalletStore,
)
from .storage.sqlalchemy import AsyncSQLAlchemyStorage


class MintApp:
    """Central dependency container used by request handlers and workers.

    The catalog is loaded once here and handed to every component; nothing
    else keeps a module level copy of it.
    """

    def __init__(
        self,
        config: CardMintConfig,
        *,
        catalog: CatalogIndex | None = None,
        gateway: ChainGateway | None = None,
        ledger_store: LedgerStore | None = None,
        purchase_store: PurchaseStore | None = None,
        cursor_store: CursorStore | None = None,
        wallet_store: WalletStore | None = None,
        audit_store: AuditStore | None = None,
        event_bus: EventBus | None = None,
        rng: Random | None = None,
    ) -> None:
        self.config = config
        self.event_bus = event_bus or EventBus()
        if catalog is None:
            if not config.catalog_path:
                raise ValueError("A catalog or config.catalog_path is required")
            catalog = load_catalog(config.catalog_path)
        self.catalog = catalog

        self._rng = rng or (Random(config.rng_seed) if config.rng_seed is not None else Random())

        self._sqlalchemy_storage: AsyncSQLAlchemyStorage | None = None
        (
            self.ledger_store,
            self.purchase_store,
            self.cursor_store,
            self.wallet_store,
            self.audit_store,
        ) = self._wire_storage(ledger_store, purchase_store, cursor_store, wallet_store, audit_store)

        self.ledger = UniquenessLedger(self.ledger_store)
        self.lottery = TierLottery(self.catalog, self.ledger, config.lottery, rng=self._rng)
        self.assembler = PackAssembler(
            self.lottery, self.ledger, config.lottery, event_bus=self.event_bus
        )
        self.listener: FulfillmentListener | None = None
        if gateway is not None:
            self.attach_gateway(gateway)

    def attach_gateway(self, gateway: ChainGateway) -> FulfillmentListener:
        self.listener = FulfillmentListener(
            gateway,
            catalog=self.catalog,
            ledger=self.ledger,
            assembler=self.assembler,
            purchases=self.purchase_store,
            cursors=self.cursor_store,
            wallets=self.wallet_store,
            config=self.config.listener,
            pack_size=self.config.lottery.pack_size,
            event_bus=self.event_bus,
        )
        return self.listener

    def admin(self) -> AdminService:
        """Admin operations bound to this app and its configured switches."""
        return AdminService(
            self.ledger,
            self.wallet_store,
            self.audit_store,
            self.event_bus,
            listener=self.listener,
            allow_ledger_reset=self.config.admin.allow_ledger_reset,
            audit_logs=self.config.admin.enable_audit_logs,
        )

    async def open_pack(self, owner_id: str, packs_opened: int | None = None) -> PackResult:
        """Direct pack-open path.

        ``packs_opened`` selects the starter shape for a user's first packs;
        ``None`` always opens a bonus pack. The result may hold fewer cards
        than requested once the catalog runs dry (see ``PackResult.shortfall``).
        """
        if packs_opened is None:
            return await self.assembler.open_bonus(owner_id)
        return await self.assembler.open_for_user(owner_id, packs_opened)

    async def purchases_for_wallet(self, address: str) -> Sequence[PurchaseRecord]:
        return await self.purchase_store.for_wallet(address)

    async def availability_stats(self) -> AvailabilityStats:
        return await self.ledger.availability_stats(len(self.catalog))

    def pack_info(self) -> dict[str, Any]:
        """Static pack configuration for display surfaces."""
        return {
            "packSize": self.config.lottery.pack_size,
            "starterPacks": self.config.lottery.starter_pack_count,
            "tierRates": {
                tier: f"{rate:.2f}%" for tier, rate in self.lottery.expected_rates().items()
            },
            "catalog": self.catalog.stats(),
        }

    def _wire_storage(
        self,
        ledger_store: LedgerStore | None,
        purchase_store: PurchaseStore | None,
        cursor_store: CursorStore | None,
        wallet_store: WalletStore | None,
        audit_store: AuditStore | None,
    ) -> tuple[LedgerStore, PurchaseStore, CursorStore, WalletStore, AuditStore]:
        if ledger_store and purchase_store and cursor_store and wallet_store and audit_store:
            return ledger_store, purchase_store, cursor_store, wallet_store, audit_store

        backend = self.config.storage.backend
        if backend == "memory":
            return (
                ledger_store or InMemoryLedgerStore(),
                purchase_store or InMemoryPurchaseStore(),
                cursor_store or InMemoryCursorStore(),
                wallet_store or InMemoryWalletStore(),
                audit_store or InMemoryAuditStore(),
            )
        if backend == "sqlalchemy":
            dsn = self.config.storage.resolve_dsn()
            if not dsn:
                raise ValueError("SQLAlchemy backend requires a DSN")
            storage = AsyncSQLAlchemyStorage(dsn, echo=self.config.storage.echo_sql)
            self._sqlalchemy_storage = storage
            return (
                ledger_store or storage.ledger_store(),
                purchase_store or storage.purchase_store(),
                cursor_store or storage.cursor_store(),
                wallet_store or storage.wallet_store(),
                audit_store or storage.audit_store(),
            )
        raise ValueError(f"Unsupported storage backend {backend}")

    def snapshot(self) -> dict[str, Any]:
        """Export current configuration for debugging."""
        return {
            "storage": self.config.storage.backend,
            "catalog_size": len(self.catalog),
            "tiers": list(self.catalog.tiers),
            "network_id": self.config.listener.network_id,
            "contract": self.config.listener.contract_address,
            "listener": self.listener is not None,
        }

    async def init_backend(self) -> None:
        """Initialize storage backend resources (e.g., database tables)."""
        if self._sqlalchemy_storage:
            await self._sqlalchemy_storage.init_models()

    async def close(self) -> None:
        if self._sqlalchemy_storage:
            await self._sqlalchemy_storage.dispose()
