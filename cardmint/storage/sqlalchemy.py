"""SQLAlchemy storage backend for CardMint."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Iterable, Sequence

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    delete,
    func,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

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


class Base(DeclarativeBase):
    pass


class LedgerTable(Base):
    __tablename__ = "cardmint_ledger"

    item_key: Mapped[str] = mapped_column(String(200), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128), index=True)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    tier: Mapped[int] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(200), default="")
    season: Mapped[int] = mapped_column(Integer, default=0)
    source: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)


class PurchaseTable(Base):
    __tablename__ = "cardmint_purchases"
    __table_args__ = (
        UniqueConstraint("network_id", "contract_address", "external_pack_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    network_id: Mapped[int] = mapped_column(Integer)
    contract_address: Mapped[str] = mapped_column(String(64))
    external_pack_id: Mapped[str] = mapped_column(String(78))
    buyer_address: Mapped[str] = mapped_column(String(64), index=True)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    tx_ref: Mapped[str] = mapped_column(String(128))
    position: Mapped[int] = mapped_column(BigInteger)
    # uint256 prices do not fit a BIGINT column.
    price: Mapped[str] = mapped_column(String(78), default="0")
    status: Mapped[str] = mapped_column(String(20), default=PurchaseStatus.PURCHASED.value)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    fulfilled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PurchaseItemTable(Base):
    __tablename__ = "cardmint_purchase_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    purchase_id: Mapped[int] = mapped_column(
        ForeignKey("cardmint_purchases.id", ondelete="CASCADE"), index=True
    )
    token_ref: Mapped[str] = mapped_column(String(78))
    item_key: Mapped[str] = mapped_column(String(200))
    name: Mapped[str] = mapped_column(String(200))
    season: Mapped[int] = mapped_column(Integer)
    tier: Mapped[int] = mapped_column(Integer)
    role: Mapped[str | None] = mapped_column(String(10), nullable=True)
    mint_tx_ref: Mapped[str | None] = mapped_column(String(128), nullable=True)


class SyncCursorTable(Base):
    __tablename__ = "cardmint_sync_cursor"
    __table_args__ = (UniqueConstraint("network_id", "contract_address"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    network_id: Mapped[int] = mapped_column(Integer)
    contract_address: Mapped[str] = mapped_column(String(64))
    last_position: Mapped[int] = mapped_column(BigInteger, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class WalletTable(Base):
    __tablename__ = "cardmint_wallets"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    address: Mapped[str] = mapped_column(String(64), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class AuditTable(Base):
    __tablename__ = "cardmint_audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    action: Mapped[str] = mapped_column(String(128))
    payload: Mapped[dict] = mapped_column(JSON)


class AsyncSQLAlchemyStorage:
    """Bundle of async stores backed by SQLAlchemy."""

    def __init__(self, dsn: str, *, echo: bool = False) -> None:
        self._engine = create_async_engine(dsn, echo=echo, future=True)
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            yield session

    async def init_models(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self._engine.dispose()

    def ledger_store(self) -> "AsyncSQLAlchemyLedgerStore":
        return AsyncSQLAlchemyLedgerStore(self._session_factory)

    def purchase_store(self) -> "AsyncSQLAlchemyPurchaseStore":
        return AsyncSQLAlchemyPurchaseStore(self._session_factory)

    def cursor_store(self) -> "AsyncSQLAlchemyCursorStore":
        return AsyncSQLAlchemyCursorStore(self._session_factory)

    def wallet_store(self) -> "AsyncSQLAlchemyWalletStore":
        return AsyncSQLAlchemyWalletStore(self._session_factory)

    def audit_store(self) -> "AsyncSQLAlchemyAuditStore":
        return AsyncSQLAlchemyAuditStore(self._session_factory)


class AsyncSQLAlchemyLedgerStore(LedgerStore):
    """Ledger keyed by primary key; the database enforces insert-if-absent."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert_if_absent(self, entry: LedgerEntry) -> None:
        async with self._session_factory() as session:
            session.add(
                LedgerTable(
                    item_key=entry.item_key,
                    owner_id=entry.owner_id,
                    issued_at=entry.issued_at,
                    tier=entry.tier,
                    name=entry.name,
                    season=entry.season,
                    source=entry.source,
                )
            )
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise AlreadyIssuedError(entry.item_key) from exc

    async def contains(self, item_key: str) -> bool:
        async with self._session_factory() as session:
            return (await session.get(LedgerTable, item_key)) is not None

    async def issued_among(self, item_keys: Iterable[str]) -> set[str]:
        keys = list(item_keys)
        found: set[str] = set()
        async with self._session_factory() as session:
            # Stay under SQLite's bound-parameter limit.
            for start in range(0, len(keys), 500):
                batch = keys[start : start + 500]
                stmt = select(LedgerTable.item_key).where(LedgerTable.item_key.in_(batch))
                found.update((await session.execute(stmt)).scalars().all())
        return found

    async def count(self) -> int:
        async with self._session_factory() as session:
            return int((await session.execute(select(func.count(LedgerTable.item_key)))).scalar_one())

    async def for_owner(self, owner_id: str) -> Sequence[LedgerEntry]:
        stmt = (
            select(LedgerTable)
            .where(LedgerTable.owner_id == owner_id)
            .order_by(LedgerTable.issued_at.desc())
        )
        return await self._select_entries(stmt)

    async def for_source(self, source: str) -> Sequence[LedgerEntry]:
        stmt = select(LedgerTable).where(LedgerTable.source == source).order_by(LedgerTable.issued_at)
        return await self._select_entries(stmt)

    async def clear(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(delete(LedgerTable))
            await session.commit()
            return int(result.rowcount or 0)

    async def _select_entries(self, stmt) -> list[LedgerEntry]:
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [
                LedgerEntry(
                    item_key=row.item_key,
                    owner_id=row.owner_id,
                    issued_at=row.issued_at,
                    tier=row.tier,
                    name=row.name,
                    season=row.season,
                    source=row.source,
                )
                for row in rows
            ]


class AsyncSQLAlchemyPurchaseStore(PurchaseStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: PurchaseKey) -> PurchaseRecord | None:
        async with self._session_factory() as session:
            row = await self._find(session, key)
            if row is None:
                return None
            return await self._to_record(session, row)

    async def create_if_absent(self, record: PurchaseRecord) -> PurchaseRecord:
        async with self._session_factory() as session:
            session.add(
                PurchaseTable(
                    network_id=record.key.network_id,
                    contract_address=record.key.contract_address,
                    external_pack_id=record.key.external_pack_id,
                    buyer_address=record.buyer_address.lower(),
                    user_id=record.user_id,
                    tx_ref=record.tx_ref,
                    position=record.position,
                    price=str(record.price),
                    status=record.status.value,
                    created_at=record.created_at,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
            row = await self._find(session, record.key)
            if row is None:  # pragma: no cover - row vanished between insert and read
                raise PurchaseNotFound(f"Purchase {record.key} not found")
            return await self._to_record(session, row)

    async def mark_fulfilled(
        self, key: PurchaseKey, cards: Sequence[PurchaseCardRecord], fulfilled_at: datetime
    ) -> PurchaseRecord:
        async with self._session_factory() as session:
            row = await self._require(session, key)
            stmt = (
                update(PurchaseTable)
                .where(
                    PurchaseTable.id == row.id,
                    PurchaseTable.status == PurchaseStatus.PURCHASED.value,
                )
                .values(status=PurchaseStatus.FULFILLED.value, fulfilled_at=fulfilled_at)
            )
            result = await session.execute(stmt)
            if result.rowcount == 0:
                await session.rollback()
                raise InvalidPurchaseTransition(str(key), row.status, PurchaseStatus.FULFILLED.value)
            for card in cards:
                session.add(
                    PurchaseItemTable(
                        purchase_id=row.id,
                        token_ref=card.token_ref,
                        item_key=card.item_key,
                        name=card.name,
                        season=card.season,
                        tier=card.tier,
                        role=card.role,
                        mint_tx_ref=card.mint_tx_ref,
                    )
                )
            await session.commit()
            await session.refresh(row)
            return await self._to_record(session, row)

    async def mark_failed(self, key: PurchaseKey, reason: str) -> PurchaseRecord:
        return await self._transition(
            key,
            PurchaseStatus.PURCHASED,
            PurchaseStatus.FAILED,
            failure_reason=reason,
        )

    async def reopen(self, key: PurchaseKey) -> PurchaseRecord:
        return await self._transition(
            key,
            PurchaseStatus.FAILED,
            PurchaseStatus.PURCHASED,
            failure_reason=None,
        )

    async def for_wallet(self, address: str) -> Sequence[PurchaseRecord]:
        async with self._session_factory() as session:
            stmt = (
                select(PurchaseTable)
                .where(PurchaseTable.buyer_address == address.strip().lower())
                .order_by(PurchaseTable.created_at.desc())
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [await self._to_record(session, row) for row in rows]

    async def _transition(
        self,
        key: PurchaseKey,
        current: PurchaseStatus,
        target: PurchaseStatus,
        *,
        failure_reason: str | None,
    ) -> PurchaseRecord:
        async with self._session_factory() as session:
            row = await self._require(session, key)
            stmt = (
                update(PurchaseTable)
                .where(PurchaseTable.id == row.id, PurchaseTable.status == current.value)
                .values(status=target.value, failure_reason=failure_reason)
            )
            result = await session.execute(stmt)
            if result.rowcount == 0:
                await session.rollback()
                raise InvalidPurchaseTransition(str(key), row.status, target.value)
            await session.commit()
            await session.refresh(row)
            return await self._to_record(session, row)

    async def _find(self, session: AsyncSession, key: PurchaseKey) -> PurchaseTable | None:
        stmt = select(PurchaseTable).where(
            PurchaseTable.network_id == key.network_id,
            PurchaseTable.contract_address == key.contract_address,
            PurchaseTable.external_pack_id == key.external_pack_id,
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def _require(self, session: AsyncSession, key: PurchaseKey) -> PurchaseTable:
        row = await self._find(session, key)
        if row is None:
            raise PurchaseNotFound(f"Purchase {key} not found")
        return row

    async def _to_record(self, session: AsyncSession, row: PurchaseTable) -> PurchaseRecord:
        stmt = (
            select(PurchaseItemTable)
            .where(PurchaseItemTable.purchase_id == row.id)
            .order_by(PurchaseItemTable.id)
        )
        items = (await session.execute(stmt)).scalars().all()
        return PurchaseRecord(
            key=PurchaseKey(row.network_id, row.contract_address, row.external_pack_id),
            buyer_address=row.buyer_address,
            tx_ref=row.tx_ref,
            position=row.position,
            created_at=row.created_at,
            user_id=row.user_id,
            price=int(row.price or 0),
            status=PurchaseStatus(row.status),
            fulfilled_at=row.fulfilled_at,
            failure_reason=row.failure_reason,
            cards=[
                PurchaseCardRecord(
                    token_ref=item.token_ref,
                    item_key=item.item_key,
                    name=item.name,
                    season=item.season,
                    tier=item.tier,
                    role=item.role,
                    mint_tx_ref=item.mint_tx_ref,
                )
                for item in items
            ],
        )


class AsyncSQLAlchemyCursorStore(CursorStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, network_id: int, contract_address: str) -> int | None:
        async with self._session_factory() as session:
            row = await self._find(session, network_id, contract_address)
            return row.last_position if row else None

    async def advance(self, network_id: int, contract_address: str, position: int) -> int:
        async with self._session_factory() as session:
            row = await self._find(session, network_id, contract_address)
            now = datetime.now(timezone.utc)
            if row is None:
                row = SyncCursorTable(
                    network_id=network_id,
                    contract_address=contract_address.lower(),
                    last_position=position,
                    updated_at=now,
                )
                session.add(row)
            elif position > row.last_position:
                row.last_position = position
                row.updated_at = now
            await session.commit()
            return row.last_position

    async def _find(
        self, session: AsyncSession, network_id: int, contract_address: str
    ) -> SyncCursorTable | None:
        stmt = select(SyncCursorTable).where(
            SyncCursorTable.network_id == network_id,
            SyncCursorTable.contract_address == contract_address.lower(),
        )
        return (await session.execute(stmt)).scalar_one_or_none()


class AsyncSQLAlchemyWalletStore(WalletStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def link(self, user_id: str, address: str) -> None:
        async with self._session_factory() as session:
            await session.merge(
                WalletTable(
                    user_id=user_id,
                    address=address.strip().lower(),
                    updated_at=datetime.now(timezone.utc),
                )
            )
            await session.commit()

    async def user_for_address(self, address: str) -> str | None:
        async with self._session_factory() as session:
            stmt = (
                select(WalletTable.user_id)
                .where(WalletTable.address == address.strip().lower())
                .order_by(WalletTable.updated_at.desc())
                .limit(1)
            )
            return (await session.execute(stmt)).scalar_one_or_none()


class AsyncSQLAlchemyAuditStore(AuditStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add_entry(self, action: str, payload: dict) -> None:
        async with self._session_factory() as session:
            session.add(
                AuditTable(
                    created_at=datetime.now(timezone.utc),
                    action=action,
                    payload=dict(payload),
                )
            )
            await session.commit()
