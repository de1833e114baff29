import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from cardmint.domain.cards import CardIdentity, CatalogItem, Role
from cardmint.domain.exceptions import AlreadyIssuedError
from cardmint.domain.ledger import UniquenessLedger
from cardmint.storage.memory import InMemoryLedgerStore


def _item(name="A", season=2001, tier=10):
    return CatalogItem(identity=CardIdentity(name, season), tier=tier, role=Role.QB)


@pytest.mark.asyncio()
async def test_issue_records_owner_and_rejects_second_issue():
    ledger = UniquenessLedger(InMemoryLedgerStore())
    item = _item()
    entry = await ledger.issue(item, "user-1", source="purchase:1:0xabc:7")
    assert entry.item_key == "a_2001"
    assert entry.owner_id == "user-1"
    assert await ledger.is_issued(item)
    assert await ledger.is_issued(CardIdentity("a", 2001))
    assert await ledger.is_issued("A_2001")

    with pytest.raises(AlreadyIssuedError) as exc:
        await ledger.issue(item, "user-2")
    assert exc.value.item_key == "a_2001"

    owned = await ledger.entries_for_owner("user-1")
    assert [e.item_key for e in owned] == ["a_2001"]
    assert await ledger.entries_for_owner("user-2") == []
    assert [e.item_key for e in await ledger.entries_for_source("purchase:1:0xabc:7")] == ["a_2001"]


@pytest.mark.asyncio()
async def test_concurrent_issue_has_single_winner():
    ledger = UniquenessLedger(InMemoryLedgerStore())
    item = _item()

    results = await asyncio.gather(
        *(ledger.issue(item, f"user-{i}") for i in range(20)),
        return_exceptions=True,
    )
    winners = [r for r in results if not isinstance(r, BaseException)]
    losers = [r for r in results if isinstance(r, AlreadyIssuedError)]
    assert len(winners) == 1
    assert len(losers) == 19
    assert await ledger.issued_count() == 1


def test_threaded_issue_has_single_winner():
    ledger = UniquenessLedger(InMemoryLedgerStore(shards=4))
    item = _item()

    def attempt(owner: str) -> bool:
        try:
            asyncio.run(ledger.issue(item, owner))
        except AlreadyIssuedError:
            return False
        return True

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(attempt, [f"user-{i}" for i in range(32)]))
    assert outcomes.count(True) == 1


@pytest.mark.asyncio()
async def test_filter_available_and_stats():
    ledger = UniquenessLedger(InMemoryLedgerStore())
    items = [_item("A"), _item("B"), _item("C")]
    await ledger.issue(items[1], "user-1")

    available = await ledger.filter_available(items)
    assert [item.name for item in available] == ["A", "C"]

    stats = await ledger.availability_stats(len(items))
    assert stats.total == 3
    assert stats.issued == 1
    assert stats.available == 2
    assert stats.as_dict()["percentIssued"] == "33.33%"


@pytest.mark.asyncio()
async def test_reset_clears_every_entry():
    ledger = UniquenessLedger(InMemoryLedgerStore())
    await ledger.issue(_item("A"), "user-1")
    await ledger.issue(_item("B"), "user-1")
    assert await ledger.reset() == 2
    assert await ledger.issued_count() == 0
    await ledger.issue(_item("A"), "user-2")
