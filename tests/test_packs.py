import asyncio
from collections import Counter
from random import Random

import pytest

from cardmint.app import MintApp
from cardmint.chain.memory import InMemoryChain
from cardmint.config import CardMintConfig, ListenerConfig, LotteryConfig
from cardmint.domain.cards import CardIdentity, CatalogIndex, CatalogItem, Role
from cardmint.domain.events import PACK_OPENED
from cardmint.domain.packs import STARTER_PACK_ROLES, PackShape
from cardmint.storage.memory import InMemoryLedgerStore
from cardmint.testing import CONTRACT, CatalogItemFactory, app_fixture


def _item(name, season, tier, role=Role.QB):
    return CatalogItem(identity=CardIdentity(name, season), tier=tier, role=role)


class YieldingLedgerStore(InMemoryLedgerStore):
    """Gives other coroutines a chance to run between check and issue."""

    async def contains(self, item_key: str) -> bool:
        await asyncio.sleep(0)
        return await super().contains(item_key)

    async def issued_among(self, item_keys):
        await asyncio.sleep(0)
        return await super().issued_among(item_keys)


@pytest.fixture()
def app() -> MintApp:
    return app_fixture(CatalogItemFactory(rng=Random(11)).catalog())


@pytest.mark.asyncio()
async def test_starter_packs_cover_every_roster_role(app):
    opened = [await app.open_pack("user-1", packs_opened=n) for n in range(3)]

    for number, result in enumerate(opened):
        assert result.shape is PackShape.STARTER
        assert result.pack_number == number
        assert len(result.items) == 5
        for role, item in zip(STARTER_PACK_ROLES[number], result.items):
            if role is not None:
                assert item.role is role
                assert 4 <= item.tier <= 7

    required = Counter(
        role for roles in STARTER_PACK_ROLES.values() for role in roles if role is not None
    )
    got = Counter(item.role for result in opened for item in result.items)
    for role, count in required.items():
        assert got[role] >= count

    keys = [item.key for result in opened for item in result.items]
    assert len(keys) == len(set(keys)) == 15


@pytest.mark.asyncio()
async def test_fourth_pack_is_bonus(app):
    result = await app.open_pack("user-1", packs_opened=3)
    assert result.shape is PackShape.BONUS
    assert len(result.items) == 5
    assert result.as_dict()["packNumber"] is None


@pytest.mark.asyncio()
async def test_bonus_pack_issues_every_card_to_owner(app):
    result = await app.open_pack("user-7")
    owned = {entry.item_key for entry in await app.ledger.entries_for_owner("user-7")}
    assert owned == {item.key for item in result.items}
    assert not result.shortfall


@pytest.mark.asyncio()
async def test_starter_slot_backfills_when_role_missing():
    catalog = CatalogIndex([_item(f"Q{i}", 2000 + i, 5, Role.QB) for i in range(8)])
    app = app_fixture(catalog)
    result = await app.open_pack("user-1", packs_opened=1)
    assert len(result.items) == 5
    assert all(item.role is Role.QB for item in result.items)


@pytest.mark.asyncio()
async def test_short_pack_when_catalog_runs_dry():
    catalog = CatalogIndex([_item("A", 2001, 3), _item("B", 2002, 6), _item("C", 2003, 9)])
    app = app_fixture(catalog)
    seen = []
    app.event_bus.subscribe(PACK_OPENED, lambda payload: _collect(seen, payload))

    first = await app.open_pack("user-1")
    assert len(first.items) == 3
    assert first.shortfall
    assert first.as_dict()["shortfall"] is True

    second = await app.open_pack("user-2")
    assert second.items == []
    assert second.shortfall
    assert [payload["shortfall"] for payload in seen] == [True, True]

    stats = await app.availability_stats()
    assert stats.available == 0


async def _collect(seen, payload):
    seen.append(payload)


@pytest.mark.asyncio()
async def test_two_rare_items_two_concurrent_opens():
    catalog = CatalogIndex([_item("A", 2001, 10), _item("B", 2002, 10)])
    config = CardMintConfig(lottery=LotteryConfig(tier_weights={10: 1}, pack_size=1))
    for seed in range(10):
        app = MintApp(
            config,
            catalog=catalog,
            ledger_store=YieldingLedgerStore(),
            rng=Random(seed),
        )
        first, second = await asyncio.gather(app.open_pack("user-1"), app.open_pack("user-2"))
        issued = [item.key for item in (*first.items, *second.items)]
        assert sorted(issued) == ["a_2001", "b_2002"]
        assert await app.ledger.issued_count() == 2


@pytest.mark.asyncio()
async def test_concurrent_opens_never_duplicate():
    app = MintApp(
        CardMintConfig(rng_seed=5),
        catalog=CatalogItemFactory(rng=Random(5)).catalog(per_tier=4),
        ledger_store=YieldingLedgerStore(),
    )
    results = await asyncio.gather(*(app.open_pack(f"user-{i}") for i in range(10)))
    keys = [item.key for result in results for item in result.items]
    assert len(keys) == 50
    assert len(set(keys)) == 50


@pytest.mark.asyncio()
async def test_opens_and_purchases_together_never_duplicate():
    chain = InMemoryChain()
    config = CardMintConfig(
        listener=ListenerConfig(
            contract_address=CONTRACT, retry_base_delay=0.0, retry_max_delay=0.0
        ),
        rng_seed=13,
    )
    app = MintApp(
        config,
        catalog=CatalogItemFactory(rng=Random(13)).catalog(per_tier=2),
        gateway=chain,
        ledger_store=YieldingLedgerStore(),
    )
    await app.listener.poll_once()
    events = [chain.record_purchase(f"0x{index:040x}") for index in range(6)]

    *opened, report = await asyncio.gather(
        *(app.open_pack(f"user-{i}") for i in range(6)),
        app.listener.poll_once(),
    )
    assert report.fulfilled == 6

    opened_keys = [item.key for result in opened for item in result.items]
    minted_keys = []
    for event in events:
        record = await app.listener.purchase_status(event.external_pack_id)
        minted_keys.extend(card.item_key for card in record.cards)

    assert len(opened_keys) == len(minted_keys) == 30
    assert not set(opened_keys) & set(minted_keys)
    everything = opened_keys + minted_keys
    assert len(set(everything)) == len(everything)
    assert await app.ledger.issued_count() == len(set(everything))


@pytest.mark.asyncio()
async def test_failing_subscriber_still_returns_pack(app):
    async def broken(payload):
        raise RuntimeError("image queue down")

    app.event_bus.subscribe(PACK_OPENED, broken)
    result = await app.open_pack("user-5")
    assert len(result.items) == 5
    assert len(await app.ledger.entries_for_owner("user-5")) == 5
