from random import Random

import pytest

from cardmint.chain.memory import InMemoryChain
from cardmint.domain.events import LEDGER_RESET
from cardmint.domain.exceptions import CardMintError
from cardmint.storage.base import PurchaseStatus
from cardmint.testing import CatalogItemFactory, TestClient, WalletFactory, app_fixture

BUYER = WalletFactory().address()


def _service(app, allow_reset=False):
    app.config.admin.allow_ledger_reset = allow_reset
    return app.admin()


@pytest.fixture()
def admin_app():
    chain = InMemoryChain()
    return app_fixture(CatalogItemFactory(rng=Random(9)).catalog(), chain=chain), chain


@pytest.mark.asyncio()
async def test_reset_ledger_disabled_by_default(admin_app):
    app, _ = admin_app
    await app.open_pack("user-1")
    with pytest.raises(CardMintError):
        await _service(app).reset_ledger(actor="admin")
    assert await app.ledger.issued_count() == 5


@pytest.mark.asyncio()
async def test_reset_ledger_audits_and_notifies(admin_app):
    app, _ = admin_app
    notified = []

    async def on_reset(payload):
        notified.append(payload)

    app.event_bus.subscribe(LEDGER_RESET, on_reset)
    await app.open_pack("user-1")

    removed = await _service(app, allow_reset=True).reset_ledger(actor="admin", reason="season")
    assert removed == 5
    assert await app.ledger.issued_count() == 0
    assert notified == [{"actor": "admin", "removed": 5}]
    action, payload = app.audit_store.dump()[-1][1:]
    assert action == "reset_ledger"
    assert payload["reason"] == "season"


@pytest.mark.asyncio()
async def test_link_wallet_and_owner_report(admin_app):
    app, chain = admin_app
    service = _service(app)
    await service.link_wallet("user-9", BUYER, actor="admin")

    client = TestClient(app, chain)
    await client.poll()
    client.buy(BUYER)
    await client.poll()

    report = await service.owner_report("user-9")
    assert report["issued"] == 5
    assert {card["tier"] for card in report["cards"]} <= set(range(1, 11))
    assert [entry[1] for entry in app.audit_store.dump()] == ["link_wallet"]


@pytest.mark.asyncio()
async def test_retry_purchase(admin_app):
    app, chain = admin_app
    client = TestClient(app, chain)
    await client.poll()
    chain.fail_mints = 1
    pack_id = client.buy(BUYER)
    await client.poll()

    record = await _service(app).retry_purchase(pack_id, actor="admin")
    assert record.status is PurchaseStatus.FULFILLED
    assert app.audit_store.dump()[-1][2]["status"] == "fulfilled"


@pytest.mark.asyncio()
async def test_admin_honours_config_switches(admin_app):
    app, _ = admin_app
    app.config.admin.enable_audit_logs = False
    service = app.admin()
    await service.link_wallet("user-3", BUYER, actor="admin")
    assert app.audit_store.dump() == []
    assert await app.wallet_store.user_for_address(BUYER) == "user-3"
    with pytest.raises(CardMintError):
        await service.reset_ledger(actor="admin")

    app.config.admin.allow_ledger_reset = True
    assert await app.admin().reset_ledger(actor="admin") == 0
