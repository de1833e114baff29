from random import Random

import pytest

from cardmint import CardMintConfig, MintApp
from cardmint.config import DEFAULT_TIER_WEIGHTS, LotteryConfig, StorageConfig
from cardmint.domain.cards import CatalogIndex
from cardmint.testing import CatalogItemFactory
from cardmint.validators import validate_app, validate_config


def test_defaults():
    config = CardMintConfig()
    assert config.storage.backend == "memory"
    assert config.storage.resolve_dsn() is None
    assert dict(config.lottery.tier_weights) == dict(DEFAULT_TIER_WEIGHTS)
    assert sum(DEFAULT_TIER_WEIGHTS.values()) == 100
    assert config.lottery.pack_size == 5
    assert config.listener.chunk_size == 2000
    assert config.listener.lookback == 1000
    assert validate_config(config) == []


def test_sqlalchemy_backend_gets_default_dsn():
    storage = StorageConfig(backend="sqlalchemy")
    assert storage.resolve_dsn() == "sqlite+aiosqlite:///./cardmint.db"


def test_from_env(monkeypatch):
    monkeypatch.setenv("CARDMINT_CATALOG_PATH", "/data/players.json")
    monkeypatch.setenv("CARDMINT_STORAGE_BACKEND", "sqlalchemy")
    monkeypatch.setenv("CARDMINT_STORAGE_DSN", "sqlite+aiosqlite:///tmp.db")
    monkeypatch.setenv("CARDMINT_TIER_WEIGHTS", '{"10": 2, "1": 98}')
    monkeypatch.setenv("CARDMINT_STARTER_TIER_BAND", "7,3")
    monkeypatch.setenv("CARDMINT_CONTRACT_ADDRESS", "0xABCDEF")
    monkeypatch.setenv("CARDMINT_NETWORK_ID", "8453")
    monkeypatch.setenv("CARDMINT_CHUNK_SIZE", "500")
    monkeypatch.setenv("CARDMINT_ADMIN_ENABLE_AUDIT_LOGS", "off")
    monkeypatch.setenv("CARDMINT_ADMIN_ALLOW_LEDGER_RESET", "yes")
    monkeypatch.setenv("CARDMINT_RNG_SEED", "42")

    config = CardMintConfig.from_env()
    assert config.catalog_path == "/data/players.json"
    assert config.storage.backend == "sqlalchemy"
    assert config.storage.resolve_dsn() == "sqlite+aiosqlite:///tmp.db"
    assert config.lottery.tier_weights == {10: 2.0, 1: 98.0}
    assert config.lottery.starter_tier_band == (3, 7)
    assert config.listener.contract_address == "0xabcdef"
    assert config.listener.network_id == 8453
    assert config.listener.chunk_size == 500
    assert config.admin.enable_audit_logs is False
    assert config.admin.allow_ledger_reset is True
    assert config.rng_seed == 42


def test_from_env_rejects_bad_weights(monkeypatch):
    monkeypatch.setenv("CARDMINT_TIER_WEIGHTS", "[1, 2]")
    with pytest.raises(ValueError):
        CardMintConfig.from_env()


def test_validate_config_reports_problems():
    config = CardMintConfig(lottery=LotteryConfig(tier_weights={10: 0}, pack_size=0))
    config.listener.chunk_size = 0
    config.listener.contract_address = "abc"
    errors = validate_config(config)
    assert any("positive weight" in err for err in errors)
    assert any("pack_size" in err for err in errors)
    assert any("chunk_size" in err for err in errors)
    assert any("0x" in err for err in errors)


def test_validate_app_flags_small_catalog():
    factory = CatalogItemFactory(rng=Random(1))
    app = MintApp(CardMintConfig(), catalog=CatalogIndex(factory.batch(3)))
    assert any("exceeds catalog size" in err for err in validate_app(app))

    app = MintApp(CardMintConfig(), catalog=factory.catalog(per_tier=1, tiers=[4, 5]))
    assert validate_app(app) == []


def test_app_requires_catalog_source():
    with pytest.raises(ValueError):
        MintApp(CardMintConfig())


def test_app_rejects_unknown_backend():
    config = CardMintConfig(storage=StorageConfig(backend="redis"))
    with pytest.raises(ValueError):
        MintApp(config, catalog=CatalogItemFactory(rng=Random(1)).catalog(per_tier=1))


def test_app_snapshot_and_pack_info():
    app = MintApp(CardMintConfig(), catalog=CatalogItemFactory(rng=Random(2)).catalog(per_tier=1))
    snapshot = app.snapshot()
    assert snapshot["storage"] == "memory"
    assert snapshot["catalog_size"] == 110
    assert snapshot["listener"] is False
    info = app.pack_info()
    assert info["packSize"] == 5
    assert info["tierRates"][10] == "1.00%"
